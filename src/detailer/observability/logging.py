"""Backend wiring for detailer: the stdlib logging side of a flush.

A Detailer buffers text locally and hands it to Python's ``logging``
module only when flushed. This module owns that boundary:

- ``get_logger`` returns loggers under the ``detailer`` hierarchy that
  accept keyword structured data (``logger.info("msg", lines=3)``)
- ``DetailFormatter`` renders multi-line detail records readably
- ``JSONFormatter`` emits one JSON object per record for aggregation
- ``LogContext`` tags every record emitted inside it

Example:
    configure_logging(level=logging.DEBUG)

    with LogContext(workflow="checkout", order_id=42):
        detailer.flush()  # record carries workflow and order_id

    # JSON output for production
    configure_logging(json_format=True, force=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

#: Root of the package's logger hierarchy.
ROOT_LOGGER_NAME = "detailer"

# Context variable for structured logging context
_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger whose keyword arguments become structured record data.

    Every stdlib entry point (``debug`` ... ``critical``, ``log``) routes
    through ``_log``, so overriding it is enough to accept keywords:

        logger = get_logger("detailer.workflow")
        logger.log(logging.INFO, "step one\\nstep two", detail_lines=2)
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any] | None = None,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """Log a message, attaching context and keyword data to the record.

        The active LogContext values are merged with the explicit keyword
        arguments (keywords win) and stored on the record as
        ``structured_data`` for the formatters.

        Args:
            level: Numeric log level.
            msg: Log message, may contain % formatting placeholders.
            args: Arguments for % formatting, or None.
            exc_info: Exception info, True to capture the current one.
            extra: Additional LogRecord attributes. The
                'structured_data' key is added/overwritten.
            stack_info: If True, include stack trace in log.
            stacklevel: Stack frames to skip for caller attribution.
            **kwargs: Structured key-value data, e.g. detail_lines=4.
        """
        structured_data = {**_log_context.get(), **kwargs}

        if extra is None:
            extra = {}
        extra["structured_data"] = structured_data

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


# =============================================================================
# Formatters
# =============================================================================


class DetailFormatter(logging.Formatter):
    """Human-readable formatter for multi-line detail records.

    The first line carries the usual prefix and any structured data; the
    remaining lines of a flushed detail block follow unchanged so their
    indentation survives:

        2025-01-15 10:30:00 - detailer.workflow - INFO - outer | detail_lines=3
          a
          inner
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Initialize the detail formatter.

        Args:
            fmt: Format string using LogRecord attributes. If None, uses
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'.
            datefmt: Date/time format string for %(asctime)s.
            include_structured: If True (default), appends structured data
                as ' | key=value key=value' to the first line.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format a record, placing structured data on its first line.

        Args:
            record: The LogRecord to format. May carry a
                'structured_data' dict attribute.

        Returns:
            Formatted text. Multi-line messages keep their line breaks,
            e.g. '... - INFO - outer | detail_lines=2\\n  a'.
        """
        base = super().format(record)

        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        first, sep, rest = base.partition("\n")
        return f"{first} | {pairs}{sep}{rest}"


class JSONFormatter(logging.Formatter):
    """JSON formatter for log aggregation systems.

    Outputs each record as one JSON line with timestamp, level, logger,
    message, the message split into ``lines`` and all structured data as
    top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON object.

        Args:
            record: The LogRecord to format. Its 'structured_data'
                attribute (if present) is merged into the output.

        Returns:
            Single-line JSON string. Example:
            '{"timestamp": "...", "level": "INFO", "lines": ["outer", "  a"], ...}'
        """
        message = record.getMessage()
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            "lines": message.splitlines(),
        }

        structured = getattr(record, "structured_data", {})
        log_dict.update(structured)

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Format a structured value for the key=value suffix.

    None becomes 'null', strings containing spaces are quoted, dicts and
    lists are JSON-encoded and anything else goes through str().

    Example:
        >>> _format_value("has spaces")
        '"has spaces"'
        >>> _format_value({"depth": 2})
        '{"depth": 2}'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


@dataclass
class LogContext:
    """Context manager adding key-value pairs to every record inside it.

    Nested contexts merge, inner values overriding outer ones. Backed by
    contextvars, so each thread and task sees its own context.

    Usage:
        with LogContext(workflow="import", batch=7):
            detailer.flush()  # record includes workflow and batch
    """

    _kwargs: dict[str, Any] = field(default_factory=dict, init=False, repr=True)
    _token: contextvars.Token[dict[str, Any]] | None = field(
        default=None, init=False, repr=False
    )

    def __init__(self, **kwargs: Any) -> None:
        """Store the key-value pairs to apply on enter."""
        self._kwargs = kwargs

    def __enter__(self) -> LogContext:
        """Merge this context's values into the active logging context."""
        current = _log_context.get()
        self._token = _log_context.set({**current, **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        """Restore the logging context that was active before enter.

        Exceptions are not suppressed.
        """
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

# Track if logging has been configured
_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the backend that flushed detail records go to.

    Installs one StreamHandler on the ``detailer`` logger. The logger's
    level is the ambient minimum severity every Detailer compares its
    threshold against at construction, so configure logging before
    creating detailers.

    Idempotent: later calls are ignored unless ``force=True``.

    Args:
        level: Minimum level the backend emits (int or name).
        json_format: Use JSONFormatter instead of DetailFormatter.
        stream: Output stream. Default: sys.stderr.
        include_structured: Append structured data in text output.
            Ignored for JSON output.
        force: Reconfigure even if already configured.

    Example:
        >>> import io
        >>> buffer = io.StringIO()
        >>> configure_logging(stream=buffer, level=logging.DEBUG, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Internal implementation of configure_logging (assumes lock is held)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    if stream is None:
        stream = sys.stderr
    handler = logging.StreamHandler(stream)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = DetailFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)

    # Prevent propagation to root logger (avoid duplicate logs)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Internal implementation of reset_logging (assumes lock is held)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True

    _configured = False


def reset_logging() -> None:
    """Reset the backend to its unconfigured state (for testing).

    Removes and closes all handlers on the ``detailer`` logger. The next
    ``configure_logging()`` or ``get_logger()`` call reinitializes it.
    """
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger in the detailer hierarchy.

    Configures logging with defaults (INFO, text, stderr) on first use if
    ``configure_logging()`` has not run yet.

    Args:
        name: Logger name, normally under ``detailer.`` so it inherits the
            package handler and level.

    Returns:
        StructuredLogger accepting ``logger.info("msg", key=value)``.

    Example:
        >>> logger = get_logger("detailer.workflow")
        >>> logger.info("ready", detail_lines=0)
    """
    # Double-checked locking pattern for thread-safe lazy initialization
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    logger = logging.getLogger(name)

    # Explicit cast: setLoggerClass() makes new loggers StructuredLogger.
    # Loggers created before configuration stay plain logging.Logger.
    return cast(StructuredLogger, logger)
