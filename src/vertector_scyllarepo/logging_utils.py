"""
Structured logging utilities.

Provides:
- JSON log lines tagged with the repository table and operation in progress
- Performance logging around repository operations
"""

import json
import logging
import time
from typing import Any
from contextvars import ContextVar

# Set for the duration of a repository operation; read by StructuredFormatter
table_var: ContextVar[str] = ContextVar("table", default="")
operation_var: ContextVar[str] = ContextVar("operation", default="")

# Attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for repository logs.

    Each line has timestamp, level, logger and message, plus the table and
    operation of the repository call that emitted it, so executor records
    (statement timings, slow statement warnings, driver errors) can be
    traced back to the repository method that issued them. Fields passed
    through ``extra`` are included as-is.

    Example:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        logging.getLogger("vertector_scyllarepo").addHandler(handler)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, var in (("table", table_var), ("operation", operation_var)):
            value = var.get()
            if value:
                log_data[key] = value

        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class PerformanceLogger:
    """
    Performance logging context manager.

    Logs operation duration and outcome, and sets the table/operation
    context for everything logged inside it.

    Example:
        async with PerformanceLogger("find", logger=logger, table="person"):
            person = await execute()
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        level: int = logging.INFO,
        table: str = "",
        **context: Any
    ):
        """
        Initialize performance logger.

        Args:
            operation: Operation name
            logger: Logger instance
            level: Level for the start/completed records (failures log at ERROR)
            table: Table the operation runs against
            **context: Additional context fields
        """
        self.operation = operation
        self.logger = logger
        self.level = level
        self.table = table
        self.context = context
        self.start_time = None
        self._tokens = ()

    async def __aenter__(self):
        self.start_time = time.perf_counter()
        self._tokens = (table_var.set(self.table), operation_var.set(self.operation))

        self.logger.log(
            self.level,
            f"Starting operation: {self.operation}",
            extra={"event": "operation_start", **self.context}
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type:
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={
                    "event": "operation_failed",
                    "duration_ms": round(duration_ms, 2),
                    "error_type": exc_type.__name__,
                    "error": str(exc_val),
                    **self.context
                }
            )
        else:
            self.logger.log(
                self.level,
                f"Operation completed: {self.operation}",
                extra={
                    "event": "operation_completed",
                    "duration_ms": round(duration_ms, 2),
                    **self.context
                }
            )

        table_token, operation_token = self._tokens
        operation_var.reset(operation_token)
        table_var.reset(table_token)
