"""FastAPI dependencies for session authentication.

get_current_user resolves, in order:
1. The session cookie (``Settings.session_cookie_name``)
2. An ``Authorization: Bearer <session token>`` header

to an active session and its user.  Anything else is a 401.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from saml_sso.config import Settings, get_settings
from saml_sso.database import get_db_session
from saml_sso.errors import UnauthorizedError
from saml_sso.models.session import AuthSession
from saml_sso.models.user import User
from saml_sso.services.sessions import SessionService
from saml_sso.telemetry.logging import bind_user_context

log = structlog.get_logger(__name__)


class AuthenticatedUser:
    """The resolved user together with the session that authenticated it."""

    def __init__(self, user: User, session: AuthSession) -> None:
        self.user = user
        self.session = session

    @property
    def id(self) -> uuid.UUID:
        return self.user.id

    @property
    def email(self) -> str:
        return self.user.email


def _extract_token(request: Request, settings: Settings) -> str | None:
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    token = _extract_token(request, settings)
    if token is None:
        raise UnauthorizedError("Authentication required")

    session = await SessionService(db, settings).get_active_session(token)
    if session is None:
        log.info("auth.session_rejected", path=request.url.path)
        raise UnauthorizedError("Invalid or expired session")

    bind_user_context(session.user_id)
    return AuthenticatedUser(user=session.user, session=session)
