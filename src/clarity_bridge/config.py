"""Configuration for the worker and the relay.

Values come from an optional JSON file (``CLARITY_BRIDGE_CONFIG`` or an
explicit path) and are then overridden by ``CLARITY_*`` environment
variables.  Invalid values are logged and replaced by defaults rather than
aborting startup.

Example file::

    {
      "database": {"host": "db.example.com", "user": "niku", "password": "..."},
      "api": {"base_url": "https://clarity.example.com"},
      "relay": {"port": 3001, "request_timeout": 30}
    }
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CLARITY_BRIDGE_CONFIG"

DEFAULT_DB_PORT = 1433
DEFAULT_RELAY_PORT = 3001
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_RESTART_DELAY = 1.0
# Printed by the worker on stderr once its database pool is verified.
DEFAULT_READY_MARKER = "Clarity MCP Server Running"

_SECRET_KEYS = frozenset({"password"})


@dataclass
class DatabaseConfig:
    host: str = "localhost"
    port: int = DEFAULT_DB_PORT
    database: str = "niku"
    user: str = "niku"
    password: str = ""
    pool_min: int = 2
    pool_max: int = 20
    idle_timeout: int = 30
    login_timeout: int = 15


@dataclass
class ClarityApiConfig:
    base_url: str = "https://your-clarity-server.com"
    username: str = ""
    password: str = ""
    timeout: float = 60.0


@dataclass
class RelayConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_RELAY_PORT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    restart_delay: float = DEFAULT_RESTART_DELAY
    max_pending: int | None = None
    ready_marker: str = DEFAULT_READY_MARKER
    worker_command: list[str] = field(default_factory=lambda: [sys.executable, "-m", "clarity_bridge.mcp_server"])


@dataclass
class BridgeConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    api: ClarityApiConfig = field(default_factory=ClarityApiConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    log_dir: Path | None = None

    def to_dict(self, *, mask_secrets: bool = True) -> dict[str, Any]:
        data = asdict(self)
        data["log_dir"] = str(self.log_dir) if self.log_dir is not None else None
        if mask_secrets:
            for section in ("database", "api"):
                for key in _SECRET_KEYS:
                    if data[section].get(key):
                        data[section][key] = "***"
        return data


# (section, attribute, env var)
_ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ("database", "host", "CLARITY_DB_HOST"),
    ("database", "port", "CLARITY_DB_PORT"),
    ("database", "database", "CLARITY_DB_NAME"),
    ("database", "user", "CLARITY_DB_USER"),
    ("database", "password", "CLARITY_DB_PASSWORD"),
    ("database", "pool_min", "CLARITY_DB_POOL_MIN"),
    ("database", "pool_max", "CLARITY_DB_POOL_MAX"),
    ("database", "idle_timeout", "CLARITY_DB_IDLE_TIMEOUT"),
    ("api", "base_url", "CLARITY_BASE_URL"),
    ("api", "username", "CLARITY_USERNAME"),
    ("api", "password", "CLARITY_PASSWORD"),
    ("relay", "host", "CLARITY_RELAY_HOST"),
    ("relay", "port", "CLARITY_RELAY_PORT"),
    ("relay", "request_timeout", "CLARITY_REQUEST_TIMEOUT"),
    ("relay", "restart_delay", "CLARITY_RESTART_DELAY"),
    ("relay", "max_pending", "CLARITY_MAX_PENDING"),
    ("relay", "ready_marker", "CLARITY_READY_MARKER"),
)


def _coerce_int(raw: Any, name: str, default: int | None, *, min_value: int = 0, max_value: int | None = None) -> int | None:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r; using default %r", name, raw, default)
        return default
    if value < min_value or (max_value is not None and value > max_value):
        logger.warning("%s=%d out of range; using default %r", name, value, default)
        return default
    return value


def _coerce_float(raw: Any, name: str, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r; using default %r", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive, got %r; using default %r", name, raw, default)
        return default
    return value


def _apply(section: Any, attr: str, raw: Any, name: str) -> None:
    """Set *attr* on *section*, coercing *raw* to the attribute's type."""
    defaults = type(section)()
    default = getattr(defaults, attr)
    if attr == "port":
        value: Any = _coerce_int(raw, name, default, min_value=1, max_value=65535)
    elif attr == "max_pending":
        value = _coerce_int(raw, name, None, min_value=1)
    elif isinstance(default, int):
        value = _coerce_int(raw, name, default)
    elif isinstance(default, float):
        value = _coerce_float(raw, name, default)
    elif isinstance(default, list):
        value = [str(part) for part in raw] if isinstance(raw, list) else default
    else:
        value = str(raw)
    setattr(section, attr, value)


def _read_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Could not read config %s: %s; using defaults", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config %s is not a JSON object; using defaults", path)
        return {}
    return data


def load_config(path: Path | None = None, env: Mapping[str, str] | None = None) -> BridgeConfig:
    """Build the effective configuration: defaults, then file, then environment."""
    env = os.environ if env is None else env
    config = BridgeConfig()

    if path is None and env.get(CONFIG_ENV_VAR):
        path = Path(env[CONFIG_ENV_VAR])
    if path is not None:
        data = _read_file(path)
        for section_name in ("database", "api", "relay"):
            node = data.get(section_name, {})
            if not isinstance(node, dict):
                logger.warning("Config section %r must be an object; ignoring", section_name)
                continue
            section = getattr(config, section_name)
            for key, raw in node.items():
                if not hasattr(section, key):
                    logger.warning("Unknown config key %s.%s; ignoring", section_name, key)
                    continue
                _apply(section, key, raw, f"{section_name}.{key}")
        if data.get("log_dir"):
            config.log_dir = Path(str(data["log_dir"]))

    for section_name, attr, var in _ENV_OVERRIDES:
        if var in env:
            _apply(getattr(config, section_name), attr, env[var], var)
    if env.get("CLARITY_LOG_DIR"):
        config.log_dir = Path(env["CLARITY_LOG_DIR"])

    db = config.database
    if db.pool_min > db.pool_max:
        logger.warning("pool_min (%d) exceeds pool_max (%d); clamping", db.pool_min, db.pool_max)
        db.pool_min = db.pool_max
    return config
