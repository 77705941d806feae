"""Assertion consumer - validates an IdP response and extracts the identity.

States:

    PROVIDER_RESOLVED -> RESPONSE_PARSED -> VALIDATED -> ATTRIBUTES_EXTRACTED
                \\______________\\_______________\\_____> REJECTED

Any toolkit failure, or an empty parse result, moves to REJECTED and
surfaces as ``BadRequestError("Invalid SAML response")``.  The cause is
logged in full and never sent to the client.  Provider lookup failures
propagate unchanged (NotFoundError).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import structlog

from saml_sso.errors import BadRequestError
from saml_sso.saml.metadata import build_idp_descriptor, build_sp_descriptor
from saml_sso.saml.toolkit import ParsedResponse, SAMLToolkit
from saml_sso.services.mapping import NormalizedIdentity, map_attributes
from saml_sso.services.registry import ProviderRegistry, StoredProvider

log = structlog.get_logger(__name__)

INVALID_SAML_RESPONSE = "Invalid SAML response"


class ConsumeState(StrEnum):
    PROVIDER_RESOLVED = "provider_resolved"
    RESPONSE_PARSED = "response_parsed"
    VALIDATED = "validated"
    ATTRIBUTES_EXTRACTED = "attributes_extracted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ConsumeResult:
    provider: StoredProvider
    identity: NormalizedIdentity
    relay_state: str | None
    response: ParsedResponse


class AssertionConsumer:
    def __init__(self, registry: ProviderRegistry, toolkit: SAMLToolkit) -> None:
        self._registry = registry
        self._toolkit = toolkit

    async def consume(
        self,
        provider_id: str,
        saml_response: str,
        relay_state: str | None = None,
    ) -> ConsumeResult:
        """Validate ``saml_response`` for ``provider_id`` and map its attributes.

        Raises:
            NotFoundError: Unknown provider.
            BadRequestError: The response failed parsing or validation.
        """
        provider = await self._registry.lookup(provider_id)
        state = ConsumeState.PROVIDER_RESOLVED
        bound = log.bind(provider_id=provider_id)

        try:
            sp = build_sp_descriptor(provider.config)
            idp = build_idp_descriptor(provider.config)
            parsed = await self._toolkit.parse_and_validate_response(
                sp, idp, saml_response, relay_state
            )
            if parsed is None:
                raise ValueError("Empty SAML response")
            state = ConsumeState.RESPONSE_PARSED
            if not parsed.attributes:
                raise ValueError("SAML response carries no attributes")
            state = ConsumeState.VALIDATED
        except Exception as exc:
            bound.warning(
                "saml.response_rejected",
                state=ConsumeState.REJECTED,
                failed_after=state,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise BadRequestError(INVALID_SAML_RESPONSE) from exc

        identity = map_attributes(parsed.attributes, provider.config.mapping)
        state = ConsumeState.ATTRIBUTES_EXTRACTED
        bound.info(
            "saml.response_consumed",
            state=state,
            response_id=parsed.response_id,
            has_email=identity.email is not None,
        )
        return ConsumeResult(
            provider=provider,
            identity=identity,
            relay_state=relay_state,
            response=parsed,
        )
