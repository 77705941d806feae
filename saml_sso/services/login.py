"""Login request builder - the SP-initiated redirect to the IdP."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from saml_sso.errors import BadRequestError
from saml_sso.saml.metadata import MetadataError, build_idp_descriptor, build_sp_descriptor
from saml_sso.saml.toolkit import SAMLError, SAMLToolkit
from saml_sso.services.registry import ProviderRegistry

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LoginRedirect:
    url: str
    request_id: str


class LoginRequestBuilder:
    def __init__(self, registry: ProviderRegistry, toolkit: SAMLToolkit) -> None:
        self._registry = registry
        self._toolkit = toolkit

    async def build_login_redirect(
        self, provider_id: str, relay_state: str | None = None
    ) -> LoginRedirect:
        """Build the redirect-binding AuthnRequest URL for ``provider_id``.

        ``relay_state`` is round-tripped through the IdP and comes back on
        the callback as RelayState.

        Raises:
            NotFoundError: Unknown provider.
            BadRequestError: No usable redirect target could be built.
        """
        provider = await self._registry.lookup(provider_id)
        config = provider.config

        try:
            # unknown NameID subjects may be created by the IdP
            sp = build_sp_descriptor(config, allow_create=True)
            idp = build_idp_descriptor(config)
            request = await self._toolkit.build_authn_request(
                sp,
                idp,
                relay_state=relay_state,
                additional_params=config.additional_params,
            )
        except (MetadataError, SAMLError) as exc:
            log.warning(
                "sso.login_request_failed",
                provider_id=provider_id,
                error=str(exc),
            )
            raise BadRequestError("Unable to build SAML login request") from exc

        if not request.redirect_url:
            log.warning("sso.login_request_empty", provider_id=provider_id)
            raise BadRequestError("Unable to build SAML login request")

        log.info(
            "sso.login_redirect_built",
            provider_id=provider_id,
            request_id=request.request_id,
        )
        return LoginRedirect(url=request.redirect_url, request_id=request.request_id)
