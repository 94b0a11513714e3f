"""
Structured logging utilities for the Fuxi session engine.

Every record is a single JSON object on stdout (or a plain text line when the
``text`` format is configured), carrying optional component/operation context
and any keyword fields passed by the caller (session ids, track ids, timings).
"""
import json
import logging
import sys
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Generator

SECRET_KEYS = {'password', 'secret', 'key', 'token', 'api_key', 'auth'}


@dataclass
class LogContext:
    """Context information attached to every record of a contextual logger."""
    component: str
    operation: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class JSONFormatter(logging.Formatter):
    """Formats a record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage()
        }
        context = getattr(record, 'context', None)
        if context:
            log_entry["context"] = asdict(context)
        extra_fields = getattr(record, 'extra_fields', None)
        if extra_fields:
            log_entry.update(extra_fields)
        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }
        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Human readable single-line format with trailing key=value fields."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{self.formatTime(record)} {record.levelname:<7} {record.name}: {record.getMessage()}"
        context = getattr(record, 'context', None)
        if context:
            line += f" [{context.component}.{context.operation}]"
        extra_fields = getattr(record, 'extra_fields', None) or {}
        if extra_fields:
            line += " " + " ".join(f"{k}={v}" for k, v in extra_fields.items())
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return line


class StructuredLogger:
    """Structured logger with context propagation and operation timing."""

    def __init__(self, name: str, level: str = "INFO", fmt: str = "json"):
        """Initialize the structured logger.

        Args:
            name: Logger name (typically module name)
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            fmt: Output format, ``json`` or ``text``
        """
        self.name = name
        self.fmt = fmt
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
        self.logger.addHandler(handler)
        self.logger.propagate = False
        self._context: Optional[LogContext] = None
        self._bound: Dict[str, Any] = {}

    def _log(self, level: str, message: str, exc_info: bool = False, **kwargs) -> None:
        fields = dict(self._bound)
        fields.update(kwargs)
        extra = {
            'context': self._context,
            'extra_fields': fields
        }
        getattr(self.logger, level.lower())(message, extra=extra, exc_info=exc_info)

    def info(self, message: str, **kwargs) -> None:
        self._log("INFO", message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        """Log an error message.

        Args:
            message: Log message
            exc_info: Include exception information
            **kwargs: Additional fields to include in log
        """
        self._log("ERROR", message, exc_info=exc_info, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log("WARNING", message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log("DEBUG", message, **kwargs)

    def metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Log a metric value such as a session's positivity ratio."""
        metric_data = {
            "metric_name": name,
            "metric_value": value
        }
        if tags:
            metric_data["tags"] = tags
        self._log("INFO", f"Metric: {name}", **metric_data)

    def _spawn(self) -> 'StructuredLogger':
        level_name = logging.getLevelName(self.logger.level)
        clone = StructuredLogger(self.name, level_name, self.fmt)
        clone._context = self._context
        clone._bound = dict(self._bound)
        return clone

    def with_context(self, context: LogContext) -> 'StructuredLogger':
        """Create a new logger instance carrying ``context`` on every record."""
        new_logger = self._spawn()
        new_logger._context = context
        return new_logger

    def bind(self, **fields) -> 'StructuredLogger':
        """Create a new logger that adds ``fields`` to every record.

        Example:
            log = logger.bind(session_id=session.id)
            log.info("Participant joined", user_id=user_id)
        """
        new_logger = self._spawn()
        new_logger._bound.update(fields)
        return new_logger

    @contextmanager
    def operation_context(self, component: str, operation: str, **metadata) -> Generator['StructuredLogger', None, None]:
        """Context manager logging the start, completion or failure of an operation.

        Args:
            component: Component name performing the operation
            operation: Operation name
            **metadata: Additional metadata for the operation

        Yields:
            StructuredLogger instance with operation context
        """
        context = LogContext(component=component, operation=operation, metadata=metadata)
        contextual_logger = self.with_context(context)
        contextual_logger.debug(f"Starting operation: {operation}", operation_status="started")
        start = time.perf_counter()
        try:
            yield contextual_logger
            contextual_logger.info(
                f"Completed operation: {operation}",
                operation_status="completed",
                duration_seconds=time.perf_counter() - start
            )
        except Exception as e:
            contextual_logger.error(
                f"Failed operation: {operation}",
                exc_info=True,
                operation_status="failed",
                duration_seconds=time.perf_counter() - start,
                error_type=type(e).__name__,
                error_message=str(e)
            )
            raise

    def log_config(self, config: Dict[str, Any], exclude_secrets: bool = True) -> None:
        """Log configuration with optional secret filtering."""
        if exclude_secrets:
            config = self._filter_secrets(config, SECRET_KEYS)
        self.info("Configuration loaded", config=config)

    def _filter_secrets(self, data: Dict[str, Any], secret_keys: set) -> Dict[str, Any]:
        filtered = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(secret_key in key_lower for secret_key in secret_keys):
                filtered[key] = "***REDACTED***"
            elif isinstance(value, dict):
                filtered[key] = self._filter_secrets(value, secret_keys)
            else:
                filtered[key] = value
        return filtered


def get_logger(name: str, level: str = "INFO", fmt: str = "json") -> StructuredLogger:
    """Factory function to create a StructuredLogger instance."""
    return StructuredLogger(name, level, fmt)
