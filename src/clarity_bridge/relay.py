"""The relay instance: one supervised worker plus its request correlator.

Constructed once at process start and handed explicitly to the HTTP
layer (see :func:`clarity_bridge.http_relay.create_app`).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from clarity_bridge.config import DEFAULT_READY_MARKER, DEFAULT_REQUEST_TIMEOUT, DEFAULT_RESTART_DELAY, RelayConfig
from clarity_bridge.correlator import RequestCorrelator, Scheduler
from clarity_bridge.framing import parse_message
from clarity_bridge.supervisor import SpawnFn, SubprocessState, WorkerSupervisor

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    SubprocessState.READY: "ready",
    SubprocessState.NOT_STARTED: "initializing",
    SubprocessState.STARTING: "initializing",
    SubprocessState.DEAD: "dead",
    SubprocessState.STOPPED: "stopped",
}


class Relay:
    """HTTP-facing handle on the persistent worker."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        ready_marker: str = DEFAULT_READY_MARKER,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        max_pending: int | None = None,
        spawn: SpawnFn | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        self.supervisor = WorkerSupervisor(
            command,
            ready_marker=ready_marker,
            restart_delay=restart_delay,
            on_stdout_line=self._handle_line,
            on_terminated=self._handle_terminated,
            spawn=spawn,
            schedule=schedule,
        )
        self.correlator = RequestCorrelator(
            self.supervisor,
            timeout=request_timeout,
            max_pending=max_pending,
            schedule=schedule,
        )

    @classmethod
    def from_config(cls, config: RelayConfig, **overrides: Any) -> Relay:
        return cls(
            config.worker_command,
            ready_marker=config.ready_marker,
            request_timeout=config.request_timeout,
            restart_delay=config.restart_delay,
            max_pending=config.max_pending,
            **overrides,
        )

    @property
    def state(self) -> SubprocessState:
        return self.supervisor.state

    @property
    def ready(self) -> bool:
        return self.supervisor.ready

    @property
    def queue_size(self) -> int:
        return len(self.correlator)

    async def start(self) -> None:
        await self.supervisor.start()

    async def stop(self) -> None:
        await self.supervisor.stop()

    async def submit(self, request: dict[str, Any]) -> dict[str, Any]:
        """Relay one JSON-RPC request to the worker and return its response."""
        return await self.correlator.submit(request)

    async def notify(self, message: dict[str, Any]) -> None:
        """Forward a JSON-RPC notification to the worker."""
        await self.correlator.notify(message)

    def health(self) -> dict[str, Any]:
        state = self.state
        return {
            "status": _STATUS_LABELS[state],
            "state": state.value,
            "timestamp": datetime.now(UTC).isoformat(),
            "queueSize": self.queue_size,
            "mode": "persistent-process",
            "worker": self.supervisor.command_line,
            "pid": self.supervisor.pid,
            "restarts": self.supervisor.restarts,
        }

    def _handle_line(self, line: str) -> None:
        message = parse_message(line)
        if message is not None:
            self.correlator.dispatch(message)

    def _handle_terminated(self, returncode: int | None) -> None:
        failed = self.correlator.fail_all()
        logger.info("Worker terminated (code %s); failed %d pending request(s)", returncode, failed)
