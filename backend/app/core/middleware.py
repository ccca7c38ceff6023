"""
Request middleware — correlation IDs, request/response logging, timing.

Provides:
    • X-Request-ID header on every response (correlation ID)
    • "Incoming request" / "Request completed" / "Request failed" events
    • Request context for downstream log enrichment
    • ErrorBoundaryMiddleware — innermost catch-all for unhandled exceptions

Exactly one of "Request completed" / "Request failed" is logged per request.
A request counts as failed when the error normalizer handled an exception
for it. The tracer still catches anything that escapes the whole stack
(a failure inside another middleware) as a last resort.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from backend.app.core import request_info
from backend.app.core.errors import (
    ErrorNormalizer,
    error_stack,
    error_status_code,
    safe_message,
)
from backend.app.core.logging_config import (
    StructuredLogger,
    clear_request_context,
    set_request_context,
)


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]


def elapsed_ms(request: Request) -> float:
    """Milliseconds since the tracer saw the request; 0 when the start is unknown."""
    started_at: Optional[float] = getattr(request.state, "started_at", None)
    if started_at is None:
        return 0.0
    return max(0.0, (time.perf_counter() - started_at) * 1000)


def format_duration(duration_ms: float) -> str:
    return f"{round(duration_ms)}ms"


def _int_header(value: Optional[str]) -> Any:
    if value is None:
        return 0
    return int(value) if value.isdigit() else value


class ErrorBoundaryMiddleware(BaseHTTPMiddleware):
    """
    Innermost catch-all: render exceptions no FastAPI handler took.

    Installed below the security, rate-limit and CORS layers so a 500
    envelope still passes back out through them and picks up their headers.
    """

    def __init__(self, app: ASGIApp, normalizer: ErrorNormalizer) -> None:
        super().__init__(app)
        self.normalizer = normalizer

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self.normalizer.build_response(request, exc)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with a correlation ID and log its lifecycle.

    Incoming log entry includes:
        - requestId, method, url, client IP, user agent
        - content type/length, query and path parameters
    Completion log entry includes:
        - statusCode, duration ("12ms"), response content length
    """

    def __init__(
        self,
        app: ASGIApp,
        logger: StructuredLogger,
        normalizer: ErrorNormalizer,
    ) -> None:
        super().__init__(app)
        self.logger = logger
        self.normalizer = normalizer

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = new_request_id()
        request.state.request_id = request_id
        request.state.started_at = time.perf_counter()

        # Set context for downstream loggers
        set_request_context(requestId=request_id)

        try:
            self.logger.info(
                "Incoming request",
                requestId=request_id,
                method=request.method,
                url=request_info.request_url(request),
                ip=request_info.client_ip(request),
                userAgent=request.headers.get("user-agent"),
                contentType=request.headers.get("content-type"),
                contentLength=request.headers.get("content-length"),
                query=request_info.query_params(request),
                params=request_info.path_params(request),
            )

            try:
                response = await call_next(request)
            except Exception as exc:  # raised by a middleware above the boundary
                response = self.normalizer.build_response(request, exc)

            error = getattr(request.state, "error", None)
            if error is not None:
                self._log_failed(request, error)
            else:
                self._log_completed(request, response)

            response.headers[request_info.REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_request_context()

    def _log_completed(self, request: Request, response: Response) -> None:
        self.logger.info(
            "Request completed",
            requestId=request_info.request_id(request),
            method=request.method,
            url=request_info.request_url(request),
            statusCode=response.status_code,
            duration=format_duration(elapsed_ms(request)),
            contentLength=_int_header(response.headers.get("content-length")),
        )

    def _log_failed(self, request: Request, error: BaseException) -> None:
        self.logger.error(
            "Request failed",
            requestId=request_info.request_id(request),
            method=request.method,
            url=request_info.request_url(request),
            error={
                "message": safe_message(error),
                "stack": error_stack(error),
                "statusCode": error_status_code(error),
            },
            duration=format_duration(elapsed_ms(request)),
        )
