"""OrganizationMember model - links a user to a tenant organization.

The (user_id, organization_id) pair is unique; provisioning inserts with
ON CONFLICT DO NOTHING so repeated or concurrent callbacks converge on a
single row.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saml_sso.database import Base


class OrganizationMember(Base):
    __tablename__ = "organization_members"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(64), nullable=False, default="member")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    user: Mapped[User] = relationship("User", back_populates="memberships")  # type: ignore[name-defined]

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "organization_id",
            name="uq_organization_members_user_org",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<OrganizationMember user={self.user_id} "
            f"org={self.organization_id!r} role={self.role!r}>"
        )
