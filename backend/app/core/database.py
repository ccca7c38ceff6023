"""
Database connectivity — async PostgreSQL via SQLAlchemy 2.0 + asyncpg.

Only what the health probe needs: a lazily created engine, a ``SELECT 1``
round trip, and disposal on shutdown. No ORM models live here.

Usage:
    from backend.app.core.database import ping_database

    latency_ms = await ping_database()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from backend.app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None


def async_database_url(url: str) -> str:
    """Point a plain ``postgresql://`` URL at the asyncpg driver."""
    scheme, sep, rest = url.partition("://")
    if "+" in scheme or not sep:
        return url
    return f"postgresql+asyncpg://{rest}"


def get_engine(config: Optional[Settings] = None) -> AsyncEngine:
    """Create the engine on first use so importing the app never needs a driver."""
    global _engine
    if _engine is None:
        config = config or default_settings
        _engine = create_async_engine(
            async_database_url(config.DATABASE_URL),
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
        )
    return _engine


async def ping_database(config: Optional[Settings] = None) -> float:
    """Run ``SELECT 1``; return the round trip in ms. Raises on failure."""
    config = config or default_settings
    engine = get_engine(config)
    start = time.perf_counter()

    async def _probe() -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    await asyncio.wait_for(_probe(), timeout=config.DATABASE_PROBE_TIMEOUT)
    return (time.perf_counter() - start) * 1000


async def close_db() -> None:
    """Dispose engine connections."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connections closed")
