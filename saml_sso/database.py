"""
Async engine, session factory and the request-scoped session dependency.

The application lifespan calls init_db() once.  Route handlers receive an
AsyncSession from get_db_session(), which owns the transaction: services only
add and flush, so an SSO callback commits its user, membership and session
rows together or not at all.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from saml_sso.config import Settings, get_settings

log = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base; alembic/env.py autogenerates against its metadata."""


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _pool_options(settings: Settings) -> dict[str, Any]:
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        # aiosqlite connections are bound to the loop that opened them
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }


def init_db(settings: Settings | None = None) -> None:
    """Create the engine and session factory from ``settings``."""
    global _engine, _session_factory
    cfg = settings or get_settings()
    _engine = create_async_engine(
        cfg.database_url, echo=cfg.db_echo_sql, **_pool_options(cfg)
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    log.info(
        "database.initialized",
        url=make_url(cfg.database_url).render_as_string(hide_password=True),
    )


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    log.info("database.closed")


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; commit on success, roll back on error."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()
