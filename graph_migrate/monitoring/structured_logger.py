"""
Structured logging for migration runs.

Each export or import run binds a run ID, and each timed phase binds its
name, through structlog's context variables. Both structlog events and
stdlib records rendered by JSONFormatter carry them, so every line of a run
can be correlated with the run and the phase that emitted it.
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from structlog.contextvars import (
    bind_contextvars,
    get_contextvars,
    merge_contextvars,
    reset_contextvars,
)

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_structlog_configured = False


def _iso_timestamp(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def _add_timestamp(logger, method_name, event_dict):
    now = time.time()
    event_dict["timestamp"] = now
    event_dict["timestamp_iso"] = _iso_timestamp(now)
    return event_dict


def _configure_structlog():
    """Route structlog through the standard library, once per process."""
    global _structlog_configured
    if _structlog_configured:
        return

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            merge_contextvars,
            _add_timestamp,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _structlog_configured = True


class StructuredLogger:
    """
    Key-value logger for one migration component.

    Level filtering and handlers come from configure_logging(), since
    events end up in the standard library logger of the same name.
    """

    def __init__(self, name: str, component: Optional[str] = None):
        _configure_structlog()
        self.name = name
        self.component = component or name
        self.logger = structlog.get_logger(name).bind(component=self.component)

    def debug(self, message: str, **fields):
        self.logger.debug(message, **fields)

    def info(self, message: str, **fields):
        self.logger.info(message, **fields)

    def warning(self, message: str, **fields):
        self.logger.warning(message, **fields)

    def error(self, message: str, error: Optional[BaseException] = None, **fields):
        if error is not None:
            fields["error_type"] = type(error).__name__
            fields["error_message"] = str(error)
        self.logger.error(message, **fields)

    def bind(self, **fields) -> "StructuredLogger":
        """A logger for the same component with extra fields on every event."""
        bound = StructuredLogger(self.name, self.component)
        bound.logger = self.logger.bind(**fields)
        return bound


class LoggingContext:
    """Binds a run ID (generated if not given) for the duration of a run."""

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._tokens = None

    def __enter__(self):
        self._tokens = bind_contextvars(run_id=self.run_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        reset_contextvars(**self._tokens)


class OperationLogger:
    """
    Times one phase of a run.

    Logs the start, then either the completion or the failure with the
    elapsed time. The phase name is bound while the block runs, so nested
    log lines carry it too. Exceptions are never suppressed.
    """

    def __init__(self, logger: StructuredLogger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self._tokens = None

    @property
    def elapsed_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000

    def __enter__(self):
        self._tokens = bind_contextvars(phase=self.operation)
        self.start_time = time.perf_counter()
        self.logger.info(f"Phase started: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.logger.info(f"Phase completed: {self.operation}", duration_ms=round(self.elapsed_ms, 1))
            else:
                self.logger.error(
                    f"Phase failed: {self.operation}", error=exc_val, duration_ms=round(self.elapsed_ms, 1)
                )
        finally:
            reset_contextvars(**self._tokens)
        return False


class JSONFormatter(logging.Formatter):
    """One JSON object per stdlib record, with the bound run context merged in."""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp_iso": _iso_timestamp(record.created),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(get_contextvars())

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def get_logger(name: str, component: Optional[str] = None) -> StructuredLogger:
    return StructuredLogger(name, component)


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    log_format: Optional[str] = None,
    file_path: Optional[str] = None,
):
    """
    Replace the root logger's handlers.

    Args:
        log_level: Minimum log level name
        json_format: Render records with JSONFormatter
        log_format: Format string for plain-text output
        file_path: Also write logs to this file when given
    """
    level = logging.getLevelName(log_level.upper())
    formatter = JSONFormatter() if json_format else logging.Formatter(log_format or DEFAULT_FORMAT)

    handlers = [logging.StreamHandler()]
    if file_path:
        handlers.append(logging.FileHandler(file_path))

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
