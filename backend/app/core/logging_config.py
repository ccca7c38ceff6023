"""
Structured logging configuration.

Provides:
    • JSON-formatted logs (machine-parseable, default)
    • Pretty console logs for local development (LOG_FORMAT=text)
    • Rotating error/combined log files in production
    • Request-scoped context (requestId) via a ContextVar
    • StructuredLogger — the (level, message, fields) sink injected into
      the request tracer and the error normalizer

Usage:
    from backend.app.core.logging_config import setup_logging, StructuredLogger

    setup_logging()
    log = StructuredLogger(__name__)
    log.info("Incoming request", requestId="k3j2h1", method="GET")
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Mapping, Optional, Union

from backend.app.core.config import Settings, settings as default_settings

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_FILE_BACKUPS = 5

# ── Context variable for request-scoped data ──
_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)

# Handlers installed by setup_logging, so a re-run only replaces its own
_installed_handlers: List[logging.Handler] = []


def set_request_context(**kwargs: Any) -> None:
    """Set request-scoped log context (call from middleware)."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    """Get current request context."""
    return _request_context.get()


def clear_request_context() -> None:
    _request_context.set({})


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = getattr(record, "fields", None)
    return dict(fields) if isinstance(fields, Mapping) else {}


# ── JSON Formatter ──

class JSONFormatter(logging.Formatter):
    """Machine-parseable JSON log output for log aggregation (ELK, Datadog)."""

    def __init__(self, service: str = "", version: str = "") -> None:
        super().__init__()
        self.service = service
        self.version = version

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            log_entry["service"] = self.service
        if self.version:
            log_entry["version"] = self.version

        # Request context first, explicit event fields win on conflict
        ctx = get_request_context()
        if ctx:
            log_entry.update(ctx)
        log_entry.update(_record_fields(record))

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "stack": self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, default=str)


# ── Pretty Formatter (Development) ──

class PrettyFormatter(logging.Formatter):
    """Coloured human-readable format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")
        msg = record.getMessage()

        fields = _record_fields(record)
        request_id = fields.get("requestId") or get_request_context().get("requestId")
        ctx_str = f" [{request_id}]" if request_id else ""

        formatted = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{ctx_str} {record.name}: {msg}"
        )
        if fields:
            formatted += " " + json.dumps(fields, indent=2, default=str)

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"

        return formatted


# ── Structured sink ──

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "fatal": logging.CRITICAL,
}


class StructuredLogger:
    """
    Emit ``(level, message, fields)`` events onto a stdlib logger.

    Fields ride on the LogRecord as ``record.fields`` and are rendered by
    JSONFormatter / PrettyFormatter. Delivery is fire-and-forget: handler
    failures are dealt with by ``logging`` itself.
    """

    def __init__(self, logger: Union[logging.Logger, str] = "backend.app") -> None:
        self._logger = logging.getLogger(logger) if isinstance(logger, str) else logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, level: str, message: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        self._logger.log(
            _LEVELS.get(level, logging.INFO),
            message,
            extra={"fields": dict(fields or {})},
        )

    def error(self, message: str, **fields: Any) -> None:
        self.log("error", message, fields)

    def warn(self, message: str, **fields: Any) -> None:
        self.log("warn", message, fields)

    warning = warn

    def info(self, message: str, **fields: Any) -> None:
        self.log("info", message, fields)

    def debug(self, message: str, **fields: Any) -> None:
        self.log("debug", message, fields)

    def fatal(self, message: str, **fields: Any) -> None:
        self.log("fatal", message, fields)

    trace = debug


# ── Setup ──

def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure the root logger based on environment."""
    config = config or default_settings
    root = logging.getLogger()
    root.setLevel(config.log_level)

    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    json_formatter = JSONFormatter(service=config.APP_NAME, version=config.API_VERSION)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.WARNING if config.is_production else logging.DEBUG)
    console.setFormatter(json_formatter if config.LOG_FORMAT == "json" else PrettyFormatter())
    _installed_handlers.append(console)

    if config.is_production:
        os.makedirs(config.LOG_DIR, exist_ok=True)
        error_file = RotatingFileHandler(
            os.path.join(config.LOG_DIR, "error.log"),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        error_file.setLevel(logging.ERROR)
        combined_file = RotatingFileHandler(
            os.path.join(config.LOG_DIR, "combined.log"),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        for handler in (error_file, combined_file):
            handler.setFormatter(json_formatter)
            _installed_handlers.append(handler)

    for handler in _installed_handlers:
        root.addHandler(handler)

    # Request logging is done by RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger — call once per module."""
    return logging.getLogger(name)
