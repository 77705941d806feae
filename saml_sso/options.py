"""Configuration-time collaborator hooks.

These are code, not settings, so they are passed to ``create_app()``
rather than read from the environment.  Every hook may be a plain function
or a coroutine function.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from saml_sso.models.user import User
    from saml_sso.services.mapping import NormalizedIdentity

# (identity) -> User.  Replaces the default find-or-create-by-email path.  The
# returned user may be new or loaded elsewhere; it is merged into the request
# session and flushed before the membership and session rows reference it.
ProvisionUserHook = Callable[["NormalizedIdentity"], "User | Awaitable[User]"]
OrganizationIdResolver = Callable[["NormalizedIdentity"], "str | None | Awaitable[str | None]"]

DEFAULT_ORGANIZATION_ROLE = "member"


@dataclass(frozen=True)
class OrganizationProvisioning:
    get_organization_id: OrganizationIdResolver
    enabled: bool = True
    default_role: str = DEFAULT_ORGANIZATION_ROLE


@dataclass(frozen=True)
class SSOOptions:
    provision_user: ProvisionUserHook | None = None
    organization_provisioning: OrganizationProvisioning | None = None


async def call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async hook and return its (awaited) result."""
    result = hook(*args)
    if inspect.isawaitable(result):
        return await result
    return result
