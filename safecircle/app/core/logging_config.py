"""
Logging setup for the SafeCircle service.

Two output shapes over the stdlib logging module:
    • production  — one JSON object per line
    • elsewhere   — a compact console line

Both carry the request ID of the API call being served (bound by the
request middleware) and the structured ``extra`` fields the lifecycle
code attaches, so a fired SOS can be traced back to the call that armed it.

Usage:
    from safecircle.app.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.warning("SOS fired", extra={"alert_id": "1718460600000"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from safecircle.app.core.config import settings

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# ``extra`` attributes the service attaches to its records
STRUCTURED_FIELDS = (
    "alert_id", "contact_id", "channel", "countdown", "lat", "lon",
    "status", "duration_ms", "status_code", "endpoint", "recipient_count",
)


def bind_request_id(request_id: str) -> Token:
    """Tag log records emitted while serving this request. Returns a reset token."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def _structured(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in STRUCTURED_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = _request_id.get()
        if request_id:
            entry["request_id"] = request_id
        entry.update(_structured(record))
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``12:00:05 WARNING  [a1b2c3d4] safecircle...lifecycle: SOS fired alert_id=...``"""

    def format(self, record: logging.LogRecord) -> str:
        request_id = _request_id.get()
        tag = f" [{request_id[:8]}]" if request_id else ""
        line = (
            f"{self.formatTime(record, '%H:%M:%S')} {record.levelname:8s}"
            f"{tag} {record.name}: {record.getMessage()}"
        )
        fields = _structured(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


def setup_logging() -> None:
    """Install one stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else ConsoleFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
