"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 3000

Or from the project root:
    python -m backend.app.main
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from backend.app.core.config import Settings, settings
from backend.app.core.database import close_db
from backend.app.core.errors import ErrorNormalizer, register_error_handlers
from backend.app.core.logging_config import StructuredLogger, get_logger, setup_logging
from backend.app.core.middleware import ErrorBoundaryMiddleware, RequestLoggingMiddleware
from backend.app.core.request_info import REQUEST_ID_HEADER
from backend.app.core.security import (
    BodySizeLimitMiddleware,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)

# ── API routers ──
from backend.app.api.auth import router as auth_router
from backend.app.api.health import router as health_router
from backend.app.api.users import router as users_router

logger = get_logger(__name__)


def create_app(
    config: Optional[Settings] = None,
    event_logger: Optional[StructuredLogger] = None,
) -> FastAPI:
    """
    Build the application.

    ``event_logger`` is the sink shared by the request tracer and the error
    normalizer; tests pass a capturing stub here.
    """
    config = config or settings
    event_logger = event_logger or StructuredLogger("backend.app.requests")
    normalizer = ErrorNormalizer(event_logger, is_production=config.is_production)
    limiter = FixedWindowRateLimiter(
        max_requests=config.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=config.rate_limit_window_seconds,
    )

    # ── Application lifespan (startup / shutdown) ──
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s] on http://%s:%d (docs at /docs)",
            config.APP_NAME, config.API_VERSION, config.ENVIRONMENT,
            config.HOST, config.PORT,
        )
        yield
        await close_db()
        logger.info("Shutting down %s", config.APP_NAME)

    app = FastAPI(
        title=config.API_TITLE,
        description=config.API_DESCRIPTION,
        version=config.API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.error_normalizer = normalizer
    app.state.rate_limiter = limiter

    # ── Middleware stack (last added is outermost) ──
    app.add_middleware(ErrorBoundaryMiddleware, normalizer=normalizer)
    app.add_middleware(
        BodySizeLimitMiddleware,
        max_bytes=config.BODY_LIMIT_BYTES,
        normalizer=normalizer,
    )
    app.add_middleware(RateLimitMiddleware, limiter=limiter, normalizer=normalizer)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware, logger=event_logger, normalizer=normalizer)

    # ── Error handlers ──
    register_error_handlers(app, normalizer)

    # ── Register routers ──
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)

    return app


# ── Initialise logging ──
setup_logging(settings)

app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "backend.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
