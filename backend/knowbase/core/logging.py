"""Logging utilities for knowbase.

Records carry the session they belong to as ``ctx_session``. Components that work
on one session log through :func:`session_logger`; everything else gets ``"-"``
stamped by :class:`SessionContextFilter` so both formatters can rely on the field.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, MutableMapping

import orjson

CONTEXT_PREFIX = "ctx_"
NO_SESSION = "-"

# chatty third-party loggers kept at WARNING unless KNB_LOG_LEVEL is DEBUG
_QUIET_LOGGERS = ("watchdog", "openai", "httpx", "httpcore", "urllib3", "multipart")


class SessionContextFilter(logging.Filter):
    """Make sure every record has a ``ctx_session`` attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "ctx_session"):
            record.ctx_session = NO_SESSION
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``ctx_*`` extras land as top-level keys without the prefix."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key.startswith(CONTEXT_PREFIX):
                payload[key[len(CONTEXT_PREFIX):]] = value
        if payload.get("session") == NO_SESSION:
            del payload["session"]
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class SessionLogAdapter(logging.LoggerAdapter):
    """Stamps ``ctx_session`` on every record, keeping per-call ``extra`` values."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def configure_logging(level: str | int | None = None, use_json: bool | None = None) -> None:
    """Configure the root logger from arguments or ``KNB_LOG_LEVEL`` / ``KNB_LOG_FORMAT``."""
    if level is None:
        level = os.environ.get("KNB_LOG_LEVEL", "INFO").upper()
    if use_json is None:
        use_json = os.environ.get("KNB_LOG_FORMAT", "json").lower() != "text"
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(SessionContextFilter())
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(ctx_session)s]: %(message)s")
        )
    root.handlers = [handler]
    quiet_level = logging.DEBUG if root.level <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str = "knowbase") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def session_logger(name: str, session_id: str | None) -> SessionLogAdapter:
    return SessionLogAdapter(get_logger(name), {"ctx_session": session_id or NO_SESSION})


__all__ = [
    "JsonFormatter",
    "SessionContextFilter",
    "SessionLogAdapter",
    "configure_logging",
    "get_logger",
    "session_logger",
]
