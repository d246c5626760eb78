"""Structured logging for transcode runs.

Each run binds its run id as the correlation id, so every line a run emits
(fetch, per-tier encode, manifest, push, scratch cleanup) can be pulled out
of a shared log stream with one filter. HTTP requests bind the
``X-Correlation-ID`` header the same way. When there is no bound id the
active trace id is used, and a fresh uuid after that.

Lines are JSON objects::

    {"timestamp": "...Z", "level": "INFO", "logger": "...", "message": "...",
     "correlation_id": "...", "trace_id": "...", "span_id": "...",
     "source": {...}, "extra": {"key": "...", "tier": "720p"}}
"""

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from hls_pipeline.core.tracing import get_span_id, get_trace_id

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Present on every LogRecord; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "correlation_id"}

_QUIET_LOGGERS = ("uvicorn.access", "botocore", "boto3", "urllib3", "s3transfer")


def get_correlation_id() -> str:
    """Return the bound correlation id, binding a new one if there is none."""
    bound = correlation_id_var.get()
    if bound is not None:
        return bound
    trace_id = get_trace_id()
    if trace_id:
        return trace_id
    generated = str(uuid.uuid4())
    correlation_id_var.set(generated)
    return generated


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind ``correlation_id`` inside the block and restore the outer one after.

    A run started from a webhook request logs under its run id and the
    request's remaining lines go back to the request id.
    """
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredFormatter(logging.Formatter):
    """Render records as single-line JSON objects."""

    def __init__(self, include_stack_trace: bool = True, include_extra_fields: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace
        self.include_extra_fields = include_extra_fields

    def format(self, record: logging.LogRecord) -> str:
        line = self._envelope(record)
        line.update(self._trace_fields())
        line["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }
        if self.include_stack_trace and record.exc_info:
            line["exception"] = self._exception_fields(record.exc_info)
        if self.include_extra_fields:
            extra = self._extra_fields(record)
            if extra:
                line["extra"] = extra
        return json.dumps(line, default=str)

    @staticmethod
    def _envelope(record: logging.LogRecord) -> dict[str, Any]:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return {
            "timestamp": stamp.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

    @staticmethod
    def _trace_fields() -> dict[str, str]:
        fields = {}
        trace_id, span_id = get_trace_id(), get_span_id()
        if trace_id:
            fields["trace_id"] = trace_id
        if span_id:
            fields["span_id"] = span_id
        return fields

    @staticmethod
    def _exception_fields(exc_info) -> dict[str, Any]:
        exc_type, exc, tb = exc_info
        return {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc) if exc is not None else None,
            "stack_trace": traceback.format_exception(exc_type, exc, tb) if tb else None,
        }

    @staticmethod
    def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }


class CorrelationIdFilter(logging.Filter):
    """Stamp records with the bound correlation id unless they carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Route the root logger to stdout.

    Args:
        level: Root log level name
        json_format: JSON lines when true, a plain text line otherwise
            (the maintenance scripts use the text form)
        include_stack_trace: Add formatted tracebacks to JSON error lines
    """
    numeric_level = logging.getLevelName(level.upper())
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s"
        ))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _emit(
    logger: logging.Logger,
    level: int,
    message: str,
    fields: dict[str, Any],
    exception: Optional[BaseException] = None,
) -> None:
    fields["correlation_id"] = get_correlation_id()
    logger.log(level, message, exc_info=exception, extra=fields)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log at ERROR with keyword context, attaching ``exception`` when given."""
    _emit(logger, logging.ERROR, message, extra, exception)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    _emit(logger, logging.WARNING, message, extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    _emit(logger, logging.INFO, message, extra)
