"""Provider registry - stores and resolves per-tenant SAML configurations.

The registry is the only code that sees the serialized form of a
SAMLConfig; callers always get the typed model back.  providerId
uniqueness is enforced by the unique index on ``sso_providers.provider_id``,
so concurrent registrations of the same id resolve to one success and one
ConflictError without any read-before-write.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saml_sso.config import Settings, get_settings
from saml_sso.errors import ConfigValidationError, ConflictError, NotFoundError
from saml_sso.models.sso_provider import SSOProvider
from saml_sso.saml.config import SAMLConfig
from saml_sso.saml.metadata import MetadataError, build_idp_descriptor, build_sp_descriptor

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StoredProvider:
    id: uuid.UUID
    provider_id: str
    issuer: str
    config: SAMLConfig
    created_at: datetime

    @classmethod
    def from_row(cls, row: SSOProvider) -> StoredProvider:
        return cls(
            id=row.id,
            provider_id=row.provider_id,
            issuer=row.issuer,
            config=SAMLConfig.model_validate_json(row.saml_config),
            created_at=row.created_at,
        )


def serialize_config(config: SAMLConfig) -> str:
    return json.dumps(config.to_wire(), separators=(",", ":"), sort_keys=True)


class ProviderRegistry:
    """Register and look up SSO providers."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self._db = db
        self._settings = settings or get_settings()

    async def register(self, config: SAMLConfig | Mapping[str, Any]) -> StoredProvider:
        """Validate and persist a provider configuration.

        Raises:
            ConfigValidationError: The document fails the schema, its
                metadata cannot be parsed, or it violates the email
                mapping policy.
            ConflictError: A provider with the same providerId exists.
        """
        saml_config = self.validate(config)

        row = SSOProvider(
            provider_id=saml_config.provider_id,
            issuer=saml_config.issuer,
            saml_config=serialize_config(saml_config),
        )
        self._db.add(row)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            await self._db.rollback()
            log.warning(
                "sso.provider_conflict",
                provider_id=saml_config.provider_id,
            )
            raise ConflictError(
                f"SSO provider '{saml_config.provider_id}' already exists"
            ) from exc

        log.info(
            "sso.provider_registered",
            provider_id=row.provider_id,
            issuer=row.issuer,
        )
        return StoredProvider(
            id=row.id,
            provider_id=row.provider_id,
            issuer=row.issuer,
            config=saml_config,
            created_at=row.created_at,
        )

    async def lookup(self, provider_id: str) -> StoredProvider:
        """Return the provider registered under ``provider_id``.

        Raises:
            NotFoundError: No such provider.
        """
        result = await self._db.execute(
            select(SSOProvider).where(SSOProvider.provider_id == provider_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            log.info("sso.provider_not_found", provider_id=provider_id)
            raise NotFoundError(f"No SSO provider found for providerId '{provider_id}'")
        return StoredProvider.from_row(row)

    def validate(self, config: SAMLConfig | Mapping[str, Any]) -> SAMLConfig:
        """Run schema, metadata and policy checks without persisting."""
        if isinstance(config, SAMLConfig):
            saml_config = config
        else:
            try:
                saml_config = SAMLConfig.model_validate(config)
            except ValidationError as exc:
                raise ConfigValidationError(
                    "Invalid SAML configuration",
                    details=exc.errors(include_url=False, include_context=False),
                ) from exc

        try:
            build_sp_descriptor(saml_config)
            build_idp_descriptor(saml_config)
        except MetadataError as exc:
            raise ConfigValidationError(
                "Invalid SAML configuration",
                details=[{"loc": ["metadata"], "msg": str(exc), "type": "metadata"}],
            ) from exc

        mapping = saml_config.effective_mapping()
        if (
            self._settings.saml_require_email_mapping
            and not mapping.email
            and not saml_config.has_email_identifier_format()
        ):
            raise ConfigValidationError(
                "Invalid SAML configuration",
                details=[
                    {
                        "loc": ["mapping", "email"],
                        "msg": "mapping.email is required unless identifierFormat "
                        "is the emailAddress NameID format",
                        "type": "missing",
                    }
                ],
            )
        return saml_config
