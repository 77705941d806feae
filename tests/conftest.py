"""
Shared test fixtures for pytest.

- test_settings: Test environment configuration
- engine / session_factory / db_session: SQLite (aiosqlite) database with
  all tables created, fresh per test
- make_app: FastAPI app factory wired to the test database and settings
- client: Async HTTP client for the default app
- auth_headers: Bearer headers for a logged-in user
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import saml_sso.models  # noqa: F401 - registers all models with Base.metadata
from saml_sso.config import Environment, Settings, get_settings
from saml_sso.database import Base, get_db_session
from saml_sso.models.session import AuthSession
from saml_sso.models.user import User
from saml_sso.options import SSOOptions
from saml_sso.saml.toolkit import SAMLToolkit
from tests.helpers import StubSignatureToolkit

# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Settings
# ------------------------------------------------------------------ #


@pytest.fixture
def test_settings() -> Settings:
    """Test environment settings with safe defaults."""
    return Settings(
        environment=Environment.TEST,
        database_url="sqlite+aiosqlite:///:memory:",
        debug=True,
        db_echo_sql=False,
        cors_allowed_origins=["http://testserver"],
    )


# ------------------------------------------------------------------ #
# Database Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite shared by every connection of one test."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite for tests that need truly separate connections."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


# ------------------------------------------------------------------ #
# App / Client Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture
def make_app(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[..., FastAPI]:
    """Build an app bound to the test database.

    Signature checking is stubbed (see tests.helpers); pass ``toolkit`` to
    use another double.
    """
    from saml_sso.main import create_app

    monkeypatch.setattr("saml_sso.main.get_settings", lambda: test_settings)

    def _make(
        options: SSOOptions | None = None,
        toolkit: SAMLToolkit | None = None,
    ) -> FastAPI:
        app = create_app(options=options, toolkit=toolkit or StubSignatureToolkit())

        async def _get_test_db_session() -> AsyncGenerator[AsyncSession, None]:
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_settings] = lambda: test_settings
        app.dependency_overrides[get_db_session] = _get_test_db_session
        return app

    return _make


@pytest.fixture
async def client(make_app: Callable[..., FastAPI]) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=make_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
async def auth_headers(
    session_factory: async_sessionmaker[AsyncSession],
) -> dict[str, str]:
    """Bearer headers for an admin user with an active session."""
    async with session_factory() as session:
        user = User(email="admin@example.com", name="Admin", email_verified=True)
        session.add(user)
        await session.flush()
        auth_session = AuthSession(
            token="test-session-token",
            user_id=user.id,
            expires_at=datetime.now(UTC) + timedelta(hours=1),
        )
        session.add(auth_session)
        await session.commit()
    return {"Authorization": "Bearer test-session-token"}
