"""Structured JSON logging for clarity-bridge.

Writes JSONL to ``<log_dir>/clarity-bridge.log`` with rotation (5MB, 3
backups), and optionally to a stream.  The worker logs to stderr because
its stdout carries protocol traffic.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, TextIO

_LOG_FILENAME = "clarity-bridge.log"
_LOGGER_NAME = "clarity_bridge"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3
_EXTRA_FIELDS = (
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
    ("request_id", "request_id"),
    ("queue_size", "queue_size"),
)


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_FIELDS:
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(
    log_dir: Path | None = None,
    *,
    stream: TextIO | None = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Attach JSON handlers to the ``clarity_bridge`` logger.

    Idempotent: a second call with the same *log_dir* or *stream* adds no
    handler.  A file handler for a different path replaces the old one.
    """
    logger = logging.getLogger(_LOGGER_NAME)

    with _setup_lock:
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            target_filename = os.path.abspath(str(log_dir / _LOG_FILENAME))
            existing = None
            for h in logger.handlers[:]:
                if not isinstance(h, RotatingFileHandler):
                    continue
                if h.baseFilename == target_filename:
                    existing = h
                    continue
                # Different path: drop the stale handler.
                logger.removeHandler(h)
                h.close()
            if existing is None:
                handler = RotatingFileHandler(
                    target_filename,
                    maxBytes=_MAX_BYTES,
                    backupCount=_BACKUP_COUNT,
                )
                handler.setFormatter(_JsonFormatter())
                logger.addHandler(handler)

        if stream is not None:
            has_stream = any(
                type(h) is logging.StreamHandler and h.stream is stream for h in logger.handlers
            )
            if not has_stream:
                stream_handler = logging.StreamHandler(stream)
                stream_handler.setFormatter(_JsonFormatter())
                logger.addHandler(stream_handler)

        logger.setLevel(level)
    return logger
