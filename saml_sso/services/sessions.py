"""Session service - issues and resolves login sessions.

Security:
- Tokens come from ``secrets.token_urlsafe`` and are only ever carried in
  the HttpOnly session cookie (or an Authorization: Bearer header)
- Expired sessions never resolve
- Never log raw tokens
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta

import structlog
from fastapi import Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from saml_sso.config import Settings
from saml_sso.models.session import AuthSession
from saml_sso.models.user import User

log = structlog.get_logger(__name__)

_TOKEN_BYTES = 32


class SessionService:
    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self._db = db
        self._settings = settings

    async def create_session(self, user: User, request: Request | None = None) -> AuthSession:
        """Create a session bound to ``user`` and the request context."""
        ip_address: str | None = None
        user_agent: str | None = None
        if request is not None:
            ip_address = request.client.host if request.client else None
            user_agent = (request.headers.get("user-agent") or "")[:512] or None

        session = AuthSession(
            token=secrets.token_urlsafe(_TOKEN_BYTES),
            user_id=user.id,
            expires_at=datetime.now(UTC) + timedelta(seconds=self._settings.session_ttl_seconds),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._db.add(session)
        await self._db.flush()

        log.info(
            "session.created",
            session_id=str(session.id),
            user_id=str(user.id),
            expires_at=session.expires_at,
        )
        return session

    def set_session_cookie(self, response: Response, session: AuthSession) -> None:
        response.set_cookie(
            key=self._settings.session_cookie_name,
            value=session.token,
            max_age=self._settings.session_ttl_seconds,
            httponly=True,
            secure=self._settings.is_prod,
            samesite="lax",
            path="/",
        )

    async def get_active_session(self, token: str) -> AuthSession | None:
        """Return the unexpired session for ``token`` with its user loaded."""
        if not token:
            return None
        result = await self._db.execute(
            select(AuthSession)
            .options(selectinload(AuthSession.user))
            .where(AuthSession.token == token)
        )
        session = result.scalar_one_or_none()
        if session is None:
            return None
        if session.is_expired():
            log.info("session.expired", session_id=str(session.id))
            return None
        return session
