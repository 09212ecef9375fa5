from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog

# FTP session currently being served by this thread/task
session_id_var: ContextVar[Optional[str]] = ContextVar("ftp_session_id", default=None)

_REDACTED_KEYS = {"password", "passwd", "secret", "hash"}


def get_session_id() -> Optional[str]:
    """Get the FTP session id bound to the current context."""
    return session_id_var.get()


def bind_session_id(session_id: Optional[str]) -> None:
    """Bind an FTP session id so every log entry of this context carries it."""
    session_id_var.set(session_id)


def _add_session_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor to add the FTP session id to all log entries."""
    sid = get_session_id()
    if sid:
        event_dict.setdefault("session_id", sid)
    return event_dict


def _redact_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor to keep passwords and hashes out of the log."""
    for key in list(event_dict.keys()):
        lower_key = key.lower()
        if any(secret in lower_key for secret in _REDACTED_KEYS):
            if isinstance(event_dict[key], str) and event_dict[key]:
                event_dict[key] = "***"
    return event_dict


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _renderers(json_output: bool, development_mode: bool) -> List[Any]:
    if development_mode or not json_output:
        return [structlog.dev.ConsoleRenderer(colors=development_mode)]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging(
    log_level: Optional[str] = None,
    json_output: Optional[bool] = None,
    development_mode: Optional[bool] = None,
) -> None:
    """Configure structlog for the embedding FTP server.

    Arguments left as ``None`` come from ``LOG_LEVEL``, ``LOG_JSON`` and
    ``LOG_DEV_MODE``. Entries go to stderr so the host's stdout stays its own.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = _env_flag("LOG_JSON", "true")
    if development_mode is None:
        development_mode = _env_flag("LOG_DEV_MODE", "false")

    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_session_id,
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            *_renderers(json_output, development_mode),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Get a configured logger that carries the bound FTP session id."""
    return structlog.get_logger(name)
