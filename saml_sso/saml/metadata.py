"""SP / IdP descriptors built from stored federation metadata.

A descriptor is the runtime view of one side of the trust relationship.
Descriptors are built from the metadata documents stored in a SAMLConfig;
when a metadata document (or a field inside it) is missing, the flat
connection parameters of the config (entryPoint, cert, callbackUrl, issuer,
identifierFormat) fill in, so a config with only ``spMetadata.metadata``
still yields usable descriptors.

Metadata XML is parsed with defusedxml: it is supplied by administrators
but frequently copied from third parties.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any
from xml.etree.ElementTree import ParseError

import defusedxml.ElementTree as DefET
import structlog
from defusedxml import DefusedXmlException

from saml_sso.saml.config import EMAIL_NAME_ID_FORMAT, SAMLConfig

log = structlog.get_logger(__name__)

MD_NS = "urn:oasis:names:tc:SAML:2.0:metadata"
ALG_NS = "urn:oasis:names:tc:SAML:metadata:algsupport"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

BINDING_HTTP_REDIRECT = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"
BINDING_HTTP_POST = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"

_NS = {"md": MD_NS, "ds": DS_NS}


class MetadataError(ValueError):
    """Raised when a metadata document cannot be parsed."""


@dataclass(frozen=True)
class Endpoint:
    binding: str
    location: str


@dataclass(frozen=True)
class ServiceProviderDescriptor:
    entity_id: str
    assertion_consumer_services: tuple[Endpoint, ...]
    name_id_formats: tuple[str, ...] = (EMAIL_NAME_ID_FORMAT,)
    allow_create: bool = False
    authn_requests_signed: bool = False
    want_assertions_signed: bool = False
    signing_certs: tuple[str, ...] = ()
    encryption_certs: tuple[str, ...] = ()
    private_key: str | None = field(default=None, repr=False)
    private_key_pass: str | None = field(default=None, repr=False)
    is_assertion_encrypted: bool = False
    enc_private_key: str | None = field(default=None, repr=False)
    enc_private_key_pass: str | None = field(default=None, repr=False)
    signature_algorithm: str | None = None
    digest_algorithm: str | None = None
    audience: str | None = None

    @property
    def acs_url(self) -> str | None:
        """Preferred ACS location (POST binding first)."""
        for endpoint in self.assertion_consumer_services:
            if endpoint.binding == BINDING_HTTP_POST:
                return endpoint.location
        if self.assertion_consumer_services:
            return self.assertion_consumer_services[0].location
        return None

    @property
    def expected_audience(self) -> str:
        return self.audience or self.entity_id

    def to_public_dict(self) -> dict[str, Any]:
        """Structured metadata without key material."""
        return {
            "entityID": self.entity_id,
            "authnRequestsSigned": self.authn_requests_signed,
            "wantAssertionsSigned": self.want_assertions_signed,
            "nameIDFormat": list(self.name_id_formats),
            "assertionConsumerService": [
                asdict(endpoint) for endpoint in self.assertion_consumer_services
            ],
            "signingCert": list(self.signing_certs),
            "encryptCert": list(self.encryption_certs),
            "signatureAlgorithm": self.signature_algorithm,
            "digestAlgorithm": self.digest_algorithm,
        }


@dataclass(frozen=True)
class IdentityProviderDescriptor:
    entity_id: str | None
    single_sign_on_services: tuple[Endpoint, ...]
    signing_certs: tuple[str, ...] = ()
    want_authn_requests_signed: bool = False

    def sso_url(self, binding: str = BINDING_HTTP_REDIRECT) -> str | None:
        for endpoint in self.single_sign_on_services:
            if endpoint.binding == binding:
                return endpoint.location
        return None


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _parse_metadata(xml_text: str) -> Any:
    try:
        root = DefET.fromstring(xml_text.encode("utf-8"))
    except (ParseError, DefusedXmlException) as exc:
        raise MetadataError(f"Metadata document is not valid XML: {exc}") from exc
    if root.tag != f"{{{MD_NS}}}EntityDescriptor":
        # EntitiesDescriptor wrapping a single entity is common for IdP exports
        inner = root.find("md:EntityDescriptor", _NS)
        if inner is None:
            raise MetadataError("Metadata document has no EntityDescriptor.")
        root = inner
    return root


def _as_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("true", "1")


def normalize_cert(cert: str) -> str:
    """Return the bare base64 body of a PEM or base64 certificate."""
    lines = [
        line.strip()
        for line in cert.strip().splitlines()
        if line.strip() and not line.startswith("-----")
    ]
    return "".join(lines)


def _key_certs(descriptor: Any, use: str) -> tuple[str, ...]:
    certs: list[str] = []
    for key in descriptor.findall("md:KeyDescriptor", _NS):
        key_use = key.get("use")
        if key_use is not None and key_use != use:
            continue
        for node in key.findall("ds:KeyInfo/ds:X509Data/ds:X509Certificate", _NS):
            if node.text and node.text.strip():
                certs.append(normalize_cert(node.text))
    return tuple(dict.fromkeys(certs))


def _endpoints(descriptor: Any, tag: str) -> tuple[Endpoint, ...]:
    endpoints = []
    for node in descriptor.findall(f"md:{tag}", _NS):
        binding = node.get("Binding")
        location = node.get("Location")
        if binding and location:
            endpoints.append(Endpoint(binding=binding, location=location))
    return tuple(endpoints)


# ---------------------------------------------------------------------------
# Descriptor builders
# ---------------------------------------------------------------------------


def build_sp_descriptor(
    config: SAMLConfig, *, allow_create: bool = False
) -> ServiceProviderDescriptor:
    """Build the SP descriptor from ``spMetadata`` plus config fallbacks."""
    sp_config = config.sp_metadata
    root = _parse_metadata(sp_config.metadata)
    sp_sso = root.find("md:SPSSODescriptor", _NS)

    entity_id = root.get("entityID") or config.issuer
    acs: tuple[Endpoint, ...] = ()
    name_id_formats: tuple[str, ...] = ()
    signing_certs: tuple[str, ...] = ()
    encryption_certs: tuple[str, ...] = ()
    authn_requests_signed = False
    metadata_wants_signed = False

    if sp_sso is not None:
        acs = _endpoints(sp_sso, "AssertionConsumerService")
        name_id_formats = tuple(
            node.text.strip()
            for node in sp_sso.findall("md:NameIDFormat", _NS)
            if node.text and node.text.strip()
        )
        signing_certs = _key_certs(sp_sso, "signing")
        encryption_certs = _key_certs(sp_sso, "encryption")
        authn_requests_signed = _as_bool(sp_sso.get("AuthnRequestsSigned"))
        metadata_wants_signed = _as_bool(sp_sso.get("WantAssertionsSigned"))

    if not acs:
        acs = (Endpoint(binding=BINDING_HTTP_POST, location=config.callback_url),)
    if config.identifier_format:
        name_id_formats = (config.identifier_format,)
    elif not name_id_formats:
        name_id_formats = (EMAIL_NAME_ID_FORMAT,)

    want_assertions_signed = (
        config.want_assertions_signed
        if config.want_assertions_signed is not None
        else metadata_wants_signed
    )

    return ServiceProviderDescriptor(
        entity_id=entity_id,
        assertion_consumer_services=acs,
        name_id_formats=name_id_formats,
        allow_create=allow_create,
        authn_requests_signed=authn_requests_signed,
        want_assertions_signed=want_assertions_signed,
        signing_certs=signing_certs,
        encryption_certs=encryption_certs,
        private_key=sp_config.private_key or config.private_key,
        private_key_pass=sp_config.private_key_pass,
        is_assertion_encrypted=bool(sp_config.is_assertion_encrypted),
        enc_private_key=sp_config.enc_private_key or config.decryption_pvk,
        enc_private_key_pass=sp_config.enc_private_key_pass,
        signature_algorithm=config.signature_algorithm,
        digest_algorithm=config.digest_algorithm,
        audience=config.audience,
    )


def build_idp_descriptor(config: SAMLConfig) -> IdentityProviderDescriptor:
    """Build the IdP descriptor from ``idpMetadata`` plus entryPoint/cert."""
    entity_id: str | None = None
    sso: tuple[Endpoint, ...] = ()
    signing_certs: tuple[str, ...] = ()
    want_signed = False

    idp_config = config.idp_metadata
    if idp_config is not None and idp_config.metadata:
        root = _parse_metadata(idp_config.metadata)
        entity_id = root.get("entityID")
        idp_sso = root.find("md:IDPSSODescriptor", _NS)
        if idp_sso is not None:
            sso = _endpoints(idp_sso, "SingleSignOnService")
            signing_certs = _key_certs(idp_sso, "signing")
            want_signed = _as_bool(idp_sso.get("WantAuthnRequestsSigned"))

    if not any(e.binding == BINDING_HTTP_REDIRECT for e in sso) and config.entry_point:
        sso = sso + (Endpoint(binding=BINDING_HTTP_REDIRECT, location=config.entry_point),)
    if not signing_certs and config.cert.strip():
        signing_certs = (normalize_cert(config.cert),)

    log.debug(
        "saml.idp_descriptor_built",
        provider_id=config.provider_id,
        entity_id=entity_id,
        sso_endpoints=len(sso),
        signing_certs=len(signing_certs),
    )
    return IdentityProviderDescriptor(
        entity_id=entity_id,
        single_sign_on_services=sso,
        signing_certs=signing_certs,
        want_authn_requests_signed=want_signed,
    )
