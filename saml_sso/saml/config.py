"""SAMLConfig - the typed provider configuration document.

Field names follow the wire format (camelCase) through aliases; Python code
uses the snake_case attribute names. Unknown keys are rejected so that a typo
in a security-relevant flag (``wantAssertionsSigned``) fails registration
instead of silently degrading to the default.

Only ``spMetadata.metadata`` is mandatory among the metadata fields; every
other field is optional and the descriptor builders fall back to protocol
defaults when it is absent.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EMAIL_NAME_ID_FORMAT = "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase JSON-compatible form, omitting unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AttributeMapping(_ConfigModel):
    """Overrides for the assertion attribute names used to build an identity."""

    id: str | None = Field(
        None, description="Attribute holding the user id. Defaults to 'nameID'"
    )
    email: str | None = Field(
        None, description="Attribute holding the email. Defaults to 'nameID'"
    )
    first_name: str | None = Field(
        None, description="Attribute holding the first name. Defaults to 'givenName'"
    )
    last_name: str | None = Field(
        None, description="Attribute holding the last name. Defaults to 'surname'"
    )
    extra_fields: dict[str, str] | None = Field(
        None, description="Extra identity keys mapped to assertion attribute names"
    )


class IdPMetadataConfig(_ConfigModel):
    metadata: str | None = Field(None, description="IdP federation metadata XML")
    private_key: str | None = None
    private_key_pass: str | None = None
    is_assertion_encrypted: bool | None = None
    enc_private_key: str | None = None
    enc_private_key_pass: str | None = None


class SPMetadataConfig(_ConfigModel):
    metadata: str = Field(..., min_length=1, description="SP federation metadata XML")
    binding: str | None = Field(
        None, description="Stored only; AuthnRequests use HTTP-Redirect"
    )
    private_key: str | None = None
    private_key_pass: str | None = None
    is_assertion_encrypted: bool | None = None
    enc_private_key: str | None = None
    enc_private_key_pass: str | None = None


class SAMLConfig(_ConfigModel):
    """Complete configuration for one SAML trust relationship."""

    entry_point: str = Field(..., min_length=1, description="IdP SSO endpoint URL")
    provider_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Stable external key for this provider",
    )
    issuer: str = Field(..., min_length=1, description="SP issuer for this configuration")
    cert: str = Field(..., description="PEM or base64 IdP signing certificate")
    callback_url: str = Field(..., min_length=1, description="Assertion consumer URL")
    audience: str | None = None
    domain: str | None = None
    mapping: AttributeMapping | None = None
    idp_metadata: IdPMetadataConfig | None = None
    sp_metadata: SPMetadataConfig
    want_assertions_signed: bool | None = None
    signature_algorithm: str | None = None
    digest_algorithm: str | None = None
    identifier_format: str | None = None
    private_key: str | None = None
    decryption_pvk: str | None = None
    additional_params: dict[str, str] | None = None

    def effective_mapping(self) -> AttributeMapping:
        return self.mapping or AttributeMapping()

    def has_email_identifier_format(self) -> bool:
        return self.identifier_format == EMAIL_NAME_ID_FORMAT
