"""Create users, sessions, sso_providers and organization_members.

Revision ID: 001
Revises:
Create Date: 2026-10-17

Adds:
- users - local accounts; email unique so SSO find-or-create can use
  INSERT ... ON CONFLICT(email) DO NOTHING
- sessions - opaque-token login sessions
- sso_providers - one row per SAML trust relationship; provider_id unique
- organization_members - user/organization links; (user_id,
  organization_id) unique for idempotent provisioning
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "token",
            sa.String(128),
            nullable=False,
            comment="Opaque session token carried in the session cookie",
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sessions_token", "sessions", ["token"], unique=True)
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])

    op.create_table(
        "sso_providers",
        sa.Column("id", sa.Uuid(), primary_key=True, comment="Primary key UUID"),
        sa.Column(
            "provider_id",
            sa.String(255),
            nullable=False,
            comment="External provider key; uniqueness is enforced here, not in code",
        ),
        sa.Column(
            "issuer",
            sa.String(2048),
            nullable=False,
            comment="SP issuer for this provider configuration",
        ),
        sa.Column(
            "saml_config",
            sa.Text(),
            nullable=False,
            comment="Serialized SAMLConfig JSON document",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Record creation timestamp",
        ),
        sa.UniqueConstraint("provider_id", name="uq_sso_providers_provider_id"),
    )

    op.create_table(
        "organization_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("organization_id", sa.String(255), nullable=False),
        sa.Column("role", sa.String(64), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "user_id",
            "organization_id",
            name="uq_organization_members_user_org",
        ),
    )
    op.create_index(
        "ix_organization_members_user_id", "organization_members", ["user_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_organization_members_user_id", table_name="organization_members")
    op.drop_table("organization_members")
    op.drop_table("sso_providers")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_index("ix_sessions_token", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
