"""Structured Logging — JSON formatter and setup for production observability.

Invariants:
    - Every line carries timestamp (record time, UTC), level, logger name, and message
    - Only whitelisted extra fields are emitted (principal_id, channel_id, reason, ...);
      tokens, passwords and ciphertext never appear as fields
    - setup_logging is idempotent: calling it twice does not duplicate lines

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - Record creation time instead of format time: lines stay ordered under load
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_FIELDS = (
    "principal_id", "channel_id", "owner_id", "connection_id",
    "error_code", "reason", "key_id", "path", "attempt",
)

_HANDLER_NAME = "trustgate"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, record.__dict__[key])
            for key in _EXTRA_FIELDS
            if record.__dict__.get(key) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the process-wide handler (replacing a previous one)."""
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
