"""Newline framing for the worker's output streams.

The worker writes one JSON-RPC message per line on stdout and free-form
log lines on stderr.  Pipe reads hand back arbitrary chunks, so a
``LineFramer`` keeps the unterminated tail between reads and only yields
lines once their terminator has arrived.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger(__name__)


class LineFramer:
    """Reassemble newline-delimited lines from arbitrarily split chunks.

    One framer per stream.  Not restartable: the only state is the
    buffered remainder of the last chunk.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """The buffered text that has not yet seen a line terminator."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> Iterator[str]:
        """Append *chunk* and yield every line it completes.

        The buffer is updated before this returns; only the filtering of
        the completed lines is lazy.  Blank and whitespace-only lines are
        skipped.  A trailing ``\\r`` is stripped so CRLF writers frame the
        same way as LF writers.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        if "\n" not in chunk:
            return iter(())
        *complete, self._buffer = self._buffer.split("\n")
        return (line.rstrip("\r") for line in complete if line.strip())

    def flush(self) -> str | None:
        """Return and clear the unterminated remainder at end of stream."""
        rest = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        rest = rest.rstrip("\r")
        return rest if rest.strip() else None


def parse_message(line: str, *, source: str = "worker") -> dict[str, Any] | None:
    """Parse a stdout line as a JSON-RPC message.

    Anything that is not a JSON object is a diagnostic line from the worker
    (a stray print, a library warning): it is logged and ``None`` returned.
    """
    try:
        message = json.loads(line)
    except json.JSONDecodeError:
        logger.info("[%s] %s", source, line.strip())
        return None
    if not isinstance(message, dict):
        logger.info("[%s] %s", source, line.strip())
        return None
    return message
