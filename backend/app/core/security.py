"""
Security middleware — response hardening headers, rate limiting, body size.

Rejections (429, 413) are rendered by the ErrorNormalizer so they share the
error envelope, are logged, and carry X-Request-ID like any other failure.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from backend.app.core import request_info
from backend.app.core.errors import ErrorNormalizer, PayloadTooLargeError, RateLimitError

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "style-src 'self' 'unsafe-inline'",
    "script-src 'self'",
    "img-src 'self' data: https:",
    "base-uri 'self'",
    "font-src 'self' https: data:",
    "form-action 'self'",
    "frame-ancestors 'self'",
    "object-src 'none'",
])

SECURITY_HEADERS: Dict[str, str] = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

# Swagger UI / ReDoc load their assets from a CDN
CSP_EXEMPT_PREFIXES = ("/docs", "/redoc")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds hardening headers on every response without overriding route-set ones."""

    def __init__(self, app: ASGIApp, csp_exempt: Iterable[str] = CSP_EXEMPT_PREFIXES) -> None:
        super().__init__(app)
        self.csp_exempt = tuple(csp_exempt)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if not request.url.path.startswith(self.csp_exempt):
            response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
        return response


# ═══════════════════════════════════════════════════════════════════════════
# Rate limiting
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the current window closes


class FixedWindowRateLimiter:
    """
    In-process fixed-window counter per key.

    State lives in the worker process; with several uvicorn workers each
    one counts independently.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def hit(self, key: str) -> RateLimitDecision:
        now = self.clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        if len(self._windows) > 10_000:
            self._prune(now)

        reset_after = max(0.0, self.window_seconds - (now - started))
        return RateLimitDecision(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_after=reset_after,
        )

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, (s, _) in self._windows.items() if now - s >= self.window_seconds]
        for key in expired:
            del self._windows[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client-IP request budget; excess requests get a 429 envelope."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: FixedWindowRateLimiter,
        normalizer: ErrorNormalizer,
        key_func: Optional[Callable[[Request], str]] = None,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.normalizer = normalizer
        self.key_func = key_func or request_info.client_ip

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        decision = self.limiter.hit(self.key_func(request))
        retry_after = math.ceil(decision.reset_after)
        headers = {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": str(retry_after),
        }

        if not decision.allowed:
            exc = RateLimitError(
                f"Rate limit exceeded, retry in {retry_after} seconds",
                retry_after=retry_after,
                headers=headers,
            )
            return self.normalizer.build_response(request, exc)

        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response


# ═══════════════════════════════════════════════════════════════════════════
# Body size
# ═══════════════════════════════════════════════════════════════════════════

class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared Content-Length exceeds the limit (413)."""

    def __init__(self, app: ASGIApp, max_bytes: int, normalizer: ErrorNormalizer) -> None:
        super().__init__(app)
        self.max_bytes = max_bytes
        self.normalizer = normalizer

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            exc = PayloadTooLargeError(
                f"Request body is too large ({declared} bytes, limit {self.max_bytes})"
            )
            return self.normalizer.build_response(request, exc)
        return await call_next(request)
