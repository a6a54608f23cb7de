"""Structured logging for otelflags.

Log calls take a message plus key/value fields:

    >>> logger = get_logger("otelflags.hook")
    >>> logger.info("setup opentelemetry tracing", provider="jaeger", insecure=True)

Verbosity follows the leveled-logger convention: ``logger.v(1).info(...)``
is emitted one step below INFO (DEBUG), ``v(2)`` two steps below (TRACE).

Output formats:
    - console: ``2024-01-15 10:30:00 INFO  [otelflags.hook] message key=value``
    - logfmt:  ``ts=... level=info msg="message" logger=... key=value``
    - json:    one JSON object per line
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, TextIO


# =============================================================================
# Log Levels
# =============================================================================


class LogLevel(IntEnum):
    """Log severity levels."""

    TRACE = 5
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_string(cls, level: str) -> "LogLevel":
        """Convert string to LogLevel, defaulting to INFO."""
        mapping = {
            "trace": cls.TRACE,
            "debug": cls.DEBUG,
            "info": cls.INFO,
            "warning": cls.WARNING,
            "warn": cls.WARNING,
            "error": cls.ERROR,
            "critical": cls.CRITICAL,
            "fatal": cls.CRITICAL,
        }
        return mapping.get(level.lower(), cls.INFO)

    @classmethod
    def from_stdlib(cls, levelno: int) -> "LogLevel":
        """Map a stdlib ``logging`` level number to the closest LogLevel."""
        for level in sorted(cls, reverse=True):
            if levelno >= level:
                return level
        return cls.TRACE

    def lowered(self, steps: int) -> "LogLevel":
        """Return the level ``steps`` verbosity steps below this one."""
        ordered = sorted(LogLevel)
        index = max(ordered.index(self) - max(steps, 0), 0)
        return ordered[index]


# =============================================================================
# Log Record
# =============================================================================


@dataclass
class LogRecord:
    """A single structured log entry."""

    timestamp: datetime
    level: LogLevel
    message: str
    logger_name: str
    fields: dict[str, Any] = field(default_factory=dict)
    exception: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.name.lower(),
            "message": self.message,
            "logger": self.logger_name,
            **self.fields,
        }
        if self.exception:
            data["exception"] = {
                "type": type(self.exception).__name__,
                "message": str(self.exception),
            }
        return data


# =============================================================================
# Log Formatters
# =============================================================================


class LogFormatter(ABC):
    """Converts LogRecord objects to a line of text."""

    @abstractmethod
    def format(self, record: LogRecord) -> str:
        pass


class JSONFormatter(LogFormatter):
    """JSON log formatter, one object per line."""

    def __init__(self, *, sort_keys: bool = False) -> None:
        self._sort_keys = sort_keys

    def format(self, record: LogRecord) -> str:
        return json.dumps(record.to_dict(), sort_keys=self._sort_keys, default=str)


class LogfmtFormatter(LogFormatter):
    """Logfmt formatter.

    Example output:
        ts=2024-01-15T10:30:00+00:00 level=info msg="setup opentelemetry tracing" provider=jaeger
    """

    def __init__(self, *, timestamp_key: str = "ts") -> None:
        self._timestamp_key = timestamp_key

    def format(self, record: LogRecord) -> str:
        parts = [
            f"{self._timestamp_key}={record.timestamp.isoformat()}",
            f"level={record.level.name.lower()}",
            f'msg="{self._escape(record.message)}"',
            f"logger={record.logger_name}",
        ]
        for key, value in record.fields.items():
            parts.append(f"{key}={self._format_value(value)}")
        if record.exception:
            parts.append(f'error="{self._escape(str(record.exception))}"')
        return " ".join(parts)

    def _escape(self, value: str) -> str:
        return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")

    def _format_value(self, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        if value is None:
            return '""'
        text = str(value)
        if text == "" or any(c in text for c in ' "='):
            return f'"{self._escape(text)}"'
        return text


class ConsoleFormatter(LogFormatter):
    """Human-readable console formatter."""

    COLORS = {
        LogLevel.TRACE: "\033[90m",
        LogLevel.DEBUG: "\033[36m",
        LogLevel.INFO: "\033[32m",
        LogLevel.WARNING: "\033[33m",
        LogLevel.ERROR: "\033[31m",
        LogLevel.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        *,
        color: bool = True,
        timestamp_format: str = "%Y-%m-%d %H:%M:%S",
    ) -> None:
        self._color = color and sys.stderr.isatty()
        self._timestamp_format = timestamp_format

    def format(self, record: LogRecord) -> str:
        level = record.level.name.ljust(5)
        if self._color:
            level = f"{self.COLORS.get(record.level, '')}{level}{self.RESET}"

        parts = [
            record.timestamp.strftime(self._timestamp_format),
            level,
            f"[{record.logger_name}]",
            record.message,
        ]
        if record.fields:
            parts.append(" ".join(f"{k}={v}" for k, v in record.fields.items()))

        result = " ".join(parts)
        if record.exception:
            tb = "".join(
                traceback.format_exception(
                    type(record.exception),
                    record.exception,
                    record.exception.__traceback__,
                )
            )
            result = f"{result}\n{tb}"
        return result


# =============================================================================
# Log Handlers
# =============================================================================


class LogHandler(ABC):
    """Outputs formatted log records."""

    def __init__(
        self,
        formatter: LogFormatter | None = None,
        level: LogLevel = LogLevel.TRACE,
    ) -> None:
        self.formatter = formatter or ConsoleFormatter()
        self.level = level
        self._lock = threading.Lock()

    @abstractmethod
    def emit(self, record: LogRecord) -> None:
        pass

    def handle(self, record: LogRecord) -> None:
        if record.level >= self.level:
            with self._lock:
                self.emit(record)


class ConsoleHandler(LogHandler):
    """Writes log lines to a stream, stderr by default.

    Log output goes to stderr so it never mixes with command output on stdout.
    """

    def __init__(self, *, stream: TextIO | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._stream = stream

    def emit(self, record: LogRecord) -> None:
        stream = self._stream or sys.stderr
        stream.write(self.formatter.format(record) + "\n")
        stream.flush()


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """Structured logger with bound fields and verbosity levels.

    A logger created with ``handlers=None`` and ``level=None`` follows the
    process-wide defaults set by :func:`configure_logging`, including changes
    made after the logger was created.
    """

    def __init__(
        self,
        name: str,
        *,
        level: LogLevel | None = None,
        handlers: list[LogHandler] | None = None,
    ) -> None:
        self._name = name
        self._level = level
        self._handlers = handlers
        self._bound_fields: dict[str, Any] = {}
        self._verbosity = 0

    @classmethod
    def discard(cls, name: str = "discard") -> "StructuredLogger":
        """Create a logger that drops every record."""
        return cls(name, level=LogLevel.CRITICAL, handlers=[])

    @property
    def name(self) -> str:
        return self._name

    @property
    def level(self) -> LogLevel:
        return self._level if self._level is not None else _default_level

    @level.setter
    def level(self, value: LogLevel) -> None:
        self._level = value

    @property
    def handlers(self) -> list[LogHandler]:
        return self._handlers if self._handlers is not None else _default_handlers

    @property
    def is_discard(self) -> bool:
        return self._handlers is not None and not self._handlers

    def add_handler(self, handler: LogHandler) -> None:
        if self._handlers is None:
            self._handlers = list(_default_handlers)
        self._handlers.append(handler)

    def _child(self) -> "StructuredLogger":
        child = StructuredLogger(self._name, level=self._level, handlers=self._handlers)
        child._bound_fields = dict(self._bound_fields)
        child._verbosity = self._verbosity
        return child

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Create a child logger that adds ``fields`` to every record."""
        child = self._child()
        child._bound_fields.update(fields)
        return child

    def v(self, level: int) -> "StructuredLogger":
        """Create a child logger whose ``info`` is ``level`` steps less important."""
        child = self._child()
        child._verbosity = self._verbosity + level
        return child

    def enabled(self, level: LogLevel = LogLevel.INFO) -> bool:
        return level.lowered(self._verbosity) >= self.level

    def _log(
        self,
        level: LogLevel,
        message: str,
        exception: BaseException | None = None,
        **fields: Any,
    ) -> None:
        level = level.lowered(self._verbosity)
        if level < self.level:
            return

        record = LogRecord(
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            logger_name=self._name,
            fields={**self._bound_fields, **fields},
            exception=exception,
        )
        for handler in self.handlers:
            handler.handle(record)

    def trace(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.TRACE, message, **fields)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(LogLevel.ERROR, message, **fields)

    def exception(
        self,
        message: str,
        exc: BaseException | None = None,
        **fields: Any,
    ) -> None:
        """Log at ERROR level with exception info."""
        if exc is None:
            exc = sys.exc_info()[1]
        self._log(LogLevel.ERROR, message, exception=exc, **fields)


# =============================================================================
# SDK Log Bridge
# =============================================================================


class SDKLogBridge(logging.Handler):
    """Forwards stdlib ``logging`` records into a StructuredLogger.

    The OpenTelemetry SDK reports its own problems (failed exports, dropped
    spans) through the stdlib ``opentelemetry`` logger.
    """

    def __init__(self, target: StructuredLogger) -> None:
        super().__init__(level=logging.NOTSET)
        self.target = target

    def emit(self, record: logging.LogRecord) -> None:
        try:
            exception = record.exc_info[1] if record.exc_info else None
            self.target._log(
                LogLevel.from_stdlib(record.levelno),
                record.getMessage(),
                exception=exception,
                source=record.name,
            )
        except Exception:
            self.handleError(record)


SDK_LOGGER_NAME = "opentelemetry"


def bridge_sdk_logging(target: StructuredLogger) -> SDKLogBridge:
    """Route the OpenTelemetry SDK's stdlib logger into ``target``.

    Replaces any bridge installed by an earlier call.
    """
    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    for handler in list(sdk_logger.handlers):
        if isinstance(handler, SDKLogBridge):
            sdk_logger.removeHandler(handler)

    bridge = SDKLogBridge(target)
    sdk_logger.addHandler(bridge)
    return bridge


# =============================================================================
# Global Logger Management
# =============================================================================

_loggers: dict[str, StructuredLogger] = {}
_default_handlers: list[LogHandler] = []
_default_level: LogLevel = LogLevel.INFO
_lock = threading.Lock()

LOG_LEVEL_ENV = "OTELFLAGS_LOG_LEVEL"
LOG_FORMAT_ENV = "OTELFLAGS_LOG_FORMAT"

_FORMATTERS: dict[str, type[LogFormatter]] = {
    "console": ConsoleFormatter,
    "json": JSONFormatter,
    "logfmt": LogfmtFormatter,
}


def configure_logging(
    *,
    level: LogLevel | str = LogLevel.INFO,
    format: str = "console",
    handlers: list[LogHandler] | None = None,
) -> None:
    """Configure the process-wide logging defaults.

    Args:
        level: Default log level.
        format: Output format ("console", "json", "logfmt").
        handlers: Custom handlers (overrides format).
    """
    global _default_handlers, _default_level

    if isinstance(level, str):
        level = LogLevel.from_string(level)
    _default_level = level

    if handlers is not None:
        _default_handlers[:] = handlers
    else:
        formatter_cls = _FORMATTERS.get(format.lower(), ConsoleFormatter)
        _default_handlers[:] = [ConsoleHandler(formatter=formatter_cls())]


def get_logger(name: str) -> StructuredLogger:
    """Get or create the logger registered under ``name``."""
    with _lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name)
        return _loggers[name]


configure_logging(
    level=os.environ.get(LOG_LEVEL_ENV, "info"),
    format=os.environ.get(LOG_FORMAT_ENV, "console"),
)
