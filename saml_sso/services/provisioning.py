"""Identity provisioning - NormalizedIdentity to local user, membership, session.

Default path (no ``provision_user`` hook):
  1. INSERT the user ON CONFLICT(email) DO NOTHING, then load it by email.
     Concurrent first logins for one email therefore converge on one row.
  2. If organization provisioning is enabled and the resolver returns an id,
     INSERT the membership ON CONFLICT(user_id, organization_id) DO NOTHING.
  3. Create a session for the user.

With a ``provision_user`` hook, the hook replaces step 1. Its user is merged
into the request session and flushed so that it has an id before steps 2 and 3.

Everything runs inside the request-scoped transaction, so a failure at any
step leaves no user, membership or session behind.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saml_sso.config import Settings
from saml_sso.db.upsert import insert_ignore_conflict
from saml_sso.errors import BadRequestError, ProvisioningError
from saml_sso.models.organization_member import OrganizationMember
from saml_sso.models.session import AuthSession
from saml_sso.models.user import User
from saml_sso.options import SSOOptions, call_hook
from saml_sso.services.mapping import NormalizedIdentity
from saml_sso.services.sessions import SessionService

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProvisionResult:
    user: User
    session: AuthSession
    organization_id: str | None = None


def resolve_redirect_url(relay_state: str | None, issuer: str, default_path: str) -> str:
    """RelayState when present, else the provider issuer plus ``default_path``."""
    if relay_state:
        return relay_state
    return f"{issuer.rstrip('/')}{default_path}"


class IdentityProvisioner:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        options: SSOOptions | None = None,
    ) -> None:
        self._db = db
        self._settings = settings
        self._options = options or SSOOptions()
        self.sessions = SessionService(db, settings)

    async def provision(
        self, identity: NormalizedIdentity, request: Request | None = None
    ) -> ProvisionResult:
        """Resolve ``identity`` to a user and issue a session for it.

        Raises:
            BadRequestError: The identity has no email and no
                ``provision_user`` hook is configured.
            ProvisioningError: The ``provision_user`` hook did not return a
                persistable ``User``.
        """
        if self._options.provision_user is not None:
            user = await self._attach_hook_user(
                await call_hook(self._options.provision_user, identity)
            )
            log.info("sso.user_provisioned_by_hook", user_id=str(user.id))
        else:
            user = await self._find_or_create_user(identity)

        organization_id = await self._provision_membership(user, identity)
        session = await self.sessions.create_session(user, request)
        return ProvisionResult(user=user, session=session, organization_id=organization_id)

    async def _attach_hook_user(self, user: object) -> User:
        if not isinstance(user, User):
            raise ProvisioningError(
                f"provision_user hook returned {type(user).__name__}, expected User"
            )
        merged = await self._db.merge(user)
        await self._db.flush()
        if merged.id is None:
            raise ProvisioningError("provision_user hook returned a user without an id")
        return merged

    async def _find_or_create_user(self, identity: NormalizedIdentity) -> User:
        if not identity.email:
            log.warning("sso.identity_missing_email", identity_id=identity.id)
            raise BadRequestError("SAML response did not provide an email address")

        created = await insert_ignore_conflict(
            self._db,
            User,
            {
                "email": identity.email,
                "name": identity.name,
                # federated identities are pre-verified
                "email_verified": True,
            },
            conflict_columns=["email"],
        )
        result = await self._db.execute(select(User).where(User.email == identity.email))
        user = result.scalar_one()
        log.info(
            "sso.user_created" if created else "sso.user_reused",
            user_id=str(user.id),
            email=user.email,
        )
        return user

    async def _provision_membership(
        self, user: User, identity: NormalizedIdentity
    ) -> str | None:
        org = self._options.organization_provisioning
        if org is None or not org.enabled:
            return None

        organization_id = await call_hook(org.get_organization_id, identity)
        if not organization_id:
            return None

        created = await insert_ignore_conflict(
            self._db,
            OrganizationMember,
            {
                "user_id": user.id,
                "organization_id": organization_id,
                "role": org.default_role,
            },
            conflict_columns=["user_id", "organization_id"],
        )
        log.info(
            "sso.membership_provisioned",
            user_id=str(user.id),
            organization_id=organization_id,
            created=created,
            role=org.default_role,
        )
        return organization_id
