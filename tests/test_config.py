"""Tests for configuration loading."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

from clarity_bridge.config import (
    CONFIG_ENV_VAR,
    DEFAULT_READY_MARKER,
    DEFAULT_RELAY_PORT,
    BridgeConfig,
    load_config,
)


class TestDefaults:
    def test_no_file_no_env(self) -> None:
        config = load_config(env={})
        assert config.database.host == "localhost"
        assert config.database.port == 1433
        assert config.database.database == "niku"
        assert (config.database.pool_min, config.database.pool_max) == (2, 20)
        assert config.relay.port == DEFAULT_RELAY_PORT
        assert config.relay.request_timeout == 30.0
        assert config.relay.restart_delay == 1.0
        assert config.relay.max_pending is None
        assert config.relay.ready_marker == DEFAULT_READY_MARKER
        assert config.relay.worker_command == [sys.executable, "-m", "clarity_bridge.mcp_server"]
        assert config.log_dir is None


class TestEnvironment:
    def test_overrides(self) -> None:
        config = load_config(
            env={
                "CLARITY_DB_HOST": "sql01",
                "CLARITY_DB_PORT": "1500",
                "CLARITY_DB_PASSWORD": "pw",
                "CLARITY_BASE_URL": "https://ppm.example.com",
                "CLARITY_RELAY_PORT": "9000",
                "CLARITY_REQUEST_TIMEOUT": "2.5",
                "CLARITY_MAX_PENDING": "10",
                "CLARITY_LOG_DIR": "/var/log/clarity",
            }
        )
        assert config.database.host == "sql01"
        assert config.database.port == 1500
        assert config.database.password == "pw"
        assert config.api.base_url == "https://ppm.example.com"
        assert config.relay.port == 9000
        assert config.relay.request_timeout == 2.5
        assert config.relay.max_pending == 10
        assert config.log_dir == Path("/var/log/clarity")

    @pytest.mark.parametrize(
        ("var", "value"),
        [("CLARITY_RELAY_PORT", "abc"), ("CLARITY_RELAY_PORT", "70000"), ("CLARITY_RELAY_PORT", "0")],
    )
    def test_invalid_port_falls_back(self, var: str, value: str, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="clarity_bridge.config"):
            config = load_config(env={var: value})
        assert config.relay.port == DEFAULT_RELAY_PORT
        assert var in caplog.text

    def test_non_positive_timeout_falls_back(self) -> None:
        assert load_config(env={"CLARITY_REQUEST_TIMEOUT": "-1"}).relay.request_timeout == 30.0

    def test_pool_min_clamped(self) -> None:
        config = load_config(env={"CLARITY_DB_POOL_MIN": "50", "CLARITY_DB_POOL_MAX": "5"})
        assert config.database.pool_min == 5
        assert config.database.pool_max == 5


class TestFile:
    def test_file_then_env(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.json"
        path.write_text(
            json.dumps(
                {
                    "database": {"host": "from-file", "user": "ppm"},
                    "relay": {"port": 4000, "worker_command": ["node", "index.js"]},
                    "log_dir": str(tmp_path / "logs"),
                }
            )
        )
        config = load_config(path, env={"CLARITY_DB_HOST": "from-env"})
        assert config.database.host == "from-env"
        assert config.database.user == "ppm"
        assert config.relay.port == 4000
        assert config.relay.worker_command == ["node", "index.js"]
        assert config.log_dir == tmp_path / "logs"

    def test_path_from_env_var(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"api": {"username": "svc"}}))
        assert load_config(env={CONFIG_ENV_VAR: str(path)}).api.username == "svc"

    def test_unknown_keys_ignored(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"relay": {"colour": "blue"}}))
        with caplog.at_level(logging.WARNING, logger="clarity_bridge.config"):
            config = load_config(path, env={})
        assert not hasattr(config.relay, "colour")
        assert "relay.colour" in caplog.text

    def test_unreadable_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.json"
        path.write_text("{broken")
        assert load_config(path, env={}) == BridgeConfig()

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "absent.json", env={}) == BridgeConfig()


class TestToDict:
    def test_secrets_masked(self) -> None:
        config = load_config(env={"CLARITY_DB_PASSWORD": "pw", "CLARITY_PASSWORD": "api-pw"})
        data = config.to_dict()
        assert data["database"]["password"] == "***"
        assert data["api"]["password"] == "***"
        json.dumps(data)

    def test_secrets_shown(self) -> None:
        config = load_config(env={"CLARITY_DB_PASSWORD": "pw"})
        assert config.to_dict(mask_secrets=False)["database"]["password"] == "pw"

    def test_empty_password_not_masked(self) -> None:
        assert BridgeConfig().to_dict()["database"]["password"] == ""
