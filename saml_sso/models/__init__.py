"""ORM models package.

Import all models here so that SQLAlchemy's metadata is fully populated
when Alembic runs autogenerate.
"""

from saml_sso.models.organization_member import OrganizationMember
from saml_sso.models.session import AuthSession
from saml_sso.models.sso_provider import SSOProvider
from saml_sso.models.user import User

__all__ = [
    "User",
    "AuthSession",
    "SSOProvider",
    "OrganizationMember",
]
