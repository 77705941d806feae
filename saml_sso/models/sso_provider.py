"""SSOProvider model - one SAML trust relationship per providerId.

The SAML configuration is persisted as a serialized JSON document in a
single text column. Only the registry reads or writes that column; the rest
of the code works on the typed SAMLConfig.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from saml_sso.database import Base


class SSOProvider(Base):
    """Registered SAML identity provider.

    Columns:
        id          - Primary key UUID.
        provider_id - Stable external key used in URLs (unique).
        issuer      - SP issuer identity for this configuration.
        saml_config - Serialized SAMLConfig document (JSON text).
        created_at  - Record creation timestamp.
    """

    __tablename__ = "sso_providers"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key UUID",
    )

    provider_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="External provider key; uniqueness is enforced here, not in code",
    )

    issuer: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
        comment="SP issuer for this provider configuration",
    )

    saml_config: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Serialized SAMLConfig JSON document",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        comment="Record creation timestamp",
    )

    def __repr__(self) -> str:
        return f"<SSOProvider id={self.id} provider_id={self.provider_id!r}>"
