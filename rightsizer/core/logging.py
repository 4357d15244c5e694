"""
Rightsizer Centralized Logging -- Structured, Correlated, Run-Scoped.

Usage:
    from rightsizer.core.logging import get_logger
    logger = get_logger(__name__)
    logger.info("message", extra={"resource": "vm-42"})

Features:
    - JSON structured output (machine-parseable) or plain text
    - Run ID propagation via contextvars (each worker task inherits it)
    - Log level / format from RIGHTSIZER_LOG_LEVEL / RIGHTSIZER_LOG_FORMAT
"""

import logging
import json
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional


# ─────────────────────────────────────────────────────────────
# Run ID Context
# ─────────────────────────────────────────────────────────────

_run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def set_run_id(rid: Optional[str] = None) -> str:
    """Set a run ID for the current context. Returns the ID."""
    rid = rid or uuid.uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def get_run_id() -> Optional[str]:
    """Get the current run ID."""
    return _run_id.get()


# ─────────────────────────────────────────────────────────────
# JSON Formatter
# ─────────────────────────────────────────────────────────────

_EXTRA_FIELDS = ("resource", "group", "state", "duration_ms", "error_type")


class StructuredJSONFormatter(logging.Formatter):
    """
    Emits each log record as a single-line JSON object.
    Fields: timestamp, level, logger, message, run_id, module, function, line
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        rid = getattr(record, "run_id", None) or get_run_id()
        if rid:
            log_entry["run_id"] = rid

        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


# ─────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────

_LOG_LEVEL = os.environ.get("RIGHTSIZER_LOG_LEVEL", "INFO").upper()
_LOG_FORMAT = os.environ.get("RIGHTSIZER_LOG_FORMAT", "text")  # "json" or "text"
_configured = False


def configure_logging(
    level: str = _LOG_LEVEL,
    fmt: str = _LOG_FORMAT,
    stream=None,
    force: bool = False,
) -> None:
    """
    Configure logging for the rightsizer namespace.
    Idempotent -- subsequent calls are no-ops unless ``force`` is set,
    which replaces the handler installed by the first call.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    root = logging.getLogger("rightsizer")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(stream or sys.stderr)

    if fmt == "json":
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        ))

    root.addHandler(handler)

    for noisy in ("httpx", "httpcore", "urllib3", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ─────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────

def get_logger(name: str) -> logging.Logger:
    """
    Get a namespaced logger under the 'rightsizer' hierarchy.

    Usage:
        logger = get_logger(__name__)  # e.g., 'rightsizer.core.pool'
    """
    configure_logging()

    if not name.startswith("rightsizer"):
        name = f"rightsizer.{name}"

    return logging.getLogger(name)


class TimedOperation:
    """
    Context manager for timing operations with automatic logging.

    Usage:
        with TimedOperation(logger, "batch:web-tier", group="web-tier"):
            await pool.run_batch(...)
    """

    def __init__(self, logger: logging.Logger, operation: str, **extra):
        self.logger = logger
        self.operation = operation
        self.extra = extra
        self.start = None
        self.duration_ms = None

    def __enter__(self):
        self.start = time.perf_counter()
        self.logger.info(f"Starting: {self.operation}", extra=self.extra)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.perf_counter() - self.start) * 1000, 2)
        extras = {**self.extra, "duration_ms": self.duration_ms}

        if exc_type:
            extras["error_type"] = exc_type.__name__
            self.logger.error(
                f"Failed: {self.operation} ({self.duration_ms}ms)",
                extra=extras,
                exc_info=True,
            )
        else:
            self.logger.info(
                f"Completed: {self.operation} ({self.duration_ms}ms)",
                extra=extras,
            )
        return False
