"""Request/response correlation over the worker's stdin/stdout pair.

Requests are written as single JSON lines; responses come back on stdout
in whatever order the worker finishes them.  The correlator keeps an
insertion-ordered queue of pending callers and pairs each response with
the first pending entry whose ``id`` matches exactly (type included).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from clarity_bridge.config import DEFAULT_REQUEST_TIMEOUT
from clarity_bridge.errors import (
    NotReadyError,
    ProcessDiedError,
    RelayError,
    RequestTimeoutError,
    TooManyPendingError,
    WriteFailureError,
)

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


class LineChannel(Protocol):
    """The write side of the worker pipe, as seen by the correlator."""

    @property
    def ready(self) -> bool: ...

    async def send_line(self, line: str) -> None: ...


def call_later(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


def ids_match(left: object, right: object) -> bool:
    """Exact id equality: ``1`` never matches ``"1"``, ``1.0`` or ``True``."""
    return type(left) is type(right) and left == right


@dataclass
class PendingRequest:
    """One in-flight call awaiting its response line."""

    id: Any
    future: asyncio.Future[dict[str, Any]]
    timer: TimerHandle | None = None
    submitted_at: float = field(default_factory=time.monotonic)

    def resolve(self, message: dict[str, Any]) -> None:
        self.cancel_timer()
        if not self.future.done():
            self.future.set_result(message)

    def reject(self, error: BaseException) -> None:
        self.cancel_timer()
        if not self.future.done():
            self.future.set_exception(error)

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class RequestCorrelator:
    """Pair outbound requests with inbound responses by ``id``.

    Runs on a single event loop, so the queue needs no lock.  Matching is
    a linear scan; the expected number of concurrent callers is small.
    """

    def __init__(
        self,
        channel: LineChannel,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_pending: int | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        self._channel = channel
        self.timeout = timeout
        self.max_pending = max_pending
        self._schedule = schedule or call_later
        self._queue: list[PendingRequest] = []

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def pending_ids(self) -> list[Any]:
        return [entry.id for entry in self._queue]

    async def submit(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send *request* to the worker and wait for its response.

        Raises a ``RelayError`` subclass on every failure path: not ready,
        too many in flight, write failure, timeout, or worker death.
        """
        if not self._channel.ready:
            raise NotReadyError
        if self.max_pending is not None and len(self._queue) >= self.max_pending:
            raise TooManyPendingError(self.max_pending)
        if "id" not in request:
            msg = "Request has no 'id' field"
            raise ValueError(msg)

        entry = PendingRequest(id=request["id"], future=asyncio.get_running_loop().create_future())
        self._queue.append(entry)
        # Armed before the write: a worker that stops reading stdin blocks
        # drain() indefinitely, and the timeout must still fire.
        entry.timer = self._schedule(self.timeout, lambda: self._expire(entry))
        line = json.dumps(request, separators=(",", ":"), default=str)
        writer = asyncio.ensure_future(self._write(entry, line))

        try:
            return await entry.future
        except asyncio.CancelledError:
            self._discard(entry)
            raise
        finally:
            if not writer.done():
                writer.cancel()

    async def notify(self, message: dict[str, Any]) -> None:
        """Write an id-less JSON-RPC notification; no response is awaited."""
        if not self._channel.ready:
            raise NotReadyError
        line = json.dumps(message, separators=(",", ":"), default=str)
        try:
            await asyncio.wait_for(self._channel.send_line(line), self.timeout)
        except TimeoutError as exc:
            msg = f"Timed out after {self.timeout:g}s writing notification to MCP process"
            raise WriteFailureError(msg) from exc
        except (OSError, RuntimeError) as exc:
            logger.warning("Write to worker failed for notification %s: %s", message.get("method", "?"), exc)
            raise WriteFailureError(f"Failed to write notification to MCP process: {exc}") from exc

    async def _write(self, entry: PendingRequest, line: str) -> None:
        try:
            await self._channel.send_line(line)
        except (OSError, RuntimeError) as exc:
            # The worker may have died mid-write and already failed the entry.
            if self._discard(entry):
                logger.warning("Write to worker failed for id=%r: %s", entry.id, exc)
                error = WriteFailureError(f"Failed to write request to MCP process: {exc}")
                error.__cause__ = exc
                entry.reject(error)
        except Exception as exc:
            if self._discard(entry):
                entry.reject(exc)

    def dispatch(self, message: dict[str, Any]) -> bool:
        """Resolve the first pending entry whose id matches *message*.

        Returns ``False`` (and drops the message) when nothing matches, e.g.
        a response that arrived after its request timed out.
        """
        if "id" not in message:
            logger.debug("Dropping worker message without id: %s", message.get("method", "?"))
            return False
        message_id = message["id"]
        for index, entry in enumerate(self._queue):
            if ids_match(entry.id, message_id):
                del self._queue[index]
                entry.resolve(message)
                return True
        logger.debug("Dropping response for unknown id %r", message_id)
        return False

    def fail_all(self, error_factory: Callable[[], RelayError] = ProcessDiedError) -> int:
        """Fail every pending entry and clear the queue. Returns how many failed."""
        pending, self._queue = self._queue, []
        for entry in pending:
            entry.reject(error_factory())
        if pending:
            logger.warning("Failed %d pending request(s): %s", len(pending), error_factory())
        return len(pending)

    def _expire(self, entry: PendingRequest) -> None:
        entry.timer = None
        if self._discard(entry):
            logger.warning(
                "Request timed out",
                extra={"request_id": entry.id, "queue_size": len(self._queue)},
            )
            entry.reject(RequestTimeoutError(entry.id, self.timeout))

    def _discard(self, entry: PendingRequest) -> bool:
        """Remove *entry* itself (not merely one with the same id)."""
        for index, candidate in enumerate(self._queue):
            if candidate is entry:
                del self._queue[index]
                entry.cancel_timer()
                return True
        return False
