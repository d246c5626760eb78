"""HTTP middleware for the webhook API.

Every request gets a correlation id (the caller's ``X-Correlation-ID`` when
present), a server span, request metrics and a start/finish log line.
Runs executed inline by the webhook bind their own run id inside the
request's scope.
"""

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from opentelemetry.trace import SpanKind
from starlette.middleware.base import BaseHTTPMiddleware

from hls_pipeline.core.logging import correlation_scope, log_error, log_info
from hls_pipeline.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)
from hls_pipeline.core.tracing import add_span_attributes, create_span, record_exception

CORRELATION_ID_HEADER = "X-Correlation-ID"

_ID_SEGMENT_RE = re.compile(
    r"/(?:\d+|[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})(?=/|$)",
    re.IGNORECASE,
)

request_logger = logging.getLogger("hls_pipeline.requests")


def normalize_path(path: str) -> str:
    """Collapse numeric and uuid path segments into ``{id}`` for metric labels."""
    return _ID_SEGMENT_RE.sub("/{id}", path)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        labels = {"method": request.method, "endpoint": normalize_path(request.url.path)}
        in_progress = HTTP_REQUESTS_IN_PROGRESS.labels(**labels)
        in_progress.inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(**labels).observe(time.perf_counter() - started)
            HTTP_REQUESTS_TOTAL.labels(status_code=str(status_code), **labels).inc()
            in_progress.dec()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind the request's correlation id and echo it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        with correlation_scope(correlation_id):
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response


class TracingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        attributes = {
            "http.method": request.method,
            "http.route": request.url.path,
            "http.url": str(request.url),
            "http.user_agent": request.headers.get("user-agent", ""),
        }
        with create_span(f"{request.method} {request.url.path}", attributes, SpanKind.SERVER):
            try:
                response = await call_next(request)
            except Exception as e:
                record_exception(e)
                raise
            add_span_attributes({"http.status_code": response.status_code})
            return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method, path = request.method, request.url.path
        client_ip = request.client.host if request.client else None
        log_info(request_logger, "Request started", method=method, path=path, client_ip=client_ip)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log_error(
                request_logger,
                "Request failed",
                exception=e,
                method=method,
                path=path,
                duration_ms=_elapsed_ms(started),
            )
            raise
        log_info(
            request_logger,
            "Request completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        return response
