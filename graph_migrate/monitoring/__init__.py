"""
Logging support for graph migration runs.
"""

from .structured_logger import (
    StructuredLogger,
    LoggingContext,
    OperationLogger,
    JSONFormatter,
    configure_logging,
    get_logger,
)

__all__ = [
    "StructuredLogger",
    "LoggingContext",
    "OperationLogger",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
]
