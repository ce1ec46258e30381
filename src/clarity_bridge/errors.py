"""Relay error kinds.

Every failure a relay caller can observe is a ``RelayError`` subclass
carrying the HTTP status and machine-readable code the HTTP layer reports.
Unparseable worker output is not an error kind: it is logged and dropped.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for failures of a single relayed request."""

    status_code = 500
    code = "RELAY_ERROR"


class NotReadyError(RelayError):
    """Raised when a request arrives before the worker has signalled readiness."""

    status_code = 503
    code = "NOT_READY"

    def __init__(self, message: str = "MCP not ready") -> None:
        super().__init__(message)


class TooManyPendingError(RelayError):
    """Raised when the configured in-flight limit is reached."""

    status_code = 503
    code = "TOO_MANY_PENDING"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Too many in-flight requests (limit {limit})")


class RequestTimeoutError(RelayError):
    code = "TIMEOUT"

    def __init__(self, request_id: object, timeout: float) -> None:
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Request timeout after {timeout:g}s (id={request_id!r})")


class ProcessDiedError(RelayError):
    code = "PROCESS_DIED"

    def __init__(self, message: str = "MCP process died") -> None:
        super().__init__(message)


class WriteFailureError(RelayError):
    """Raised when a request line could not be delivered to the worker's stdin."""

    code = "WRITE_FAILED"
