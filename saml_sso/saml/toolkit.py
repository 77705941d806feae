"""SAML 2.0 protocol toolkit (Service Provider side).

Implements the three protocol operations the SSO flow needs:
- Building an AuthnRequest for the HTTP-Redirect binding
- Parsing and validating a POST-binding Response / Assertion
- Rendering SP metadata for distribution to IdPs

Key design decisions:
- defusedxml parses every untrusted document.  ElementTree is only used to
  generate output.
- XML-Signature verification and assertion decryption use lxml + xmlsec
  (``pip install saml-sso[xmlsec]``).  When xmlsec is not installed, every
  signed response is rejected: there is no unverified mode.
- A signature only counts if its Reference points at the Response or
  Assertion element being trusted, and every ID in the document is unique,
  which closes the usual signature-wrapping tricks.
- All protocol methods are async to match the FastAPI call sites; the CPU
  bound work runs in the default thread-pool executor.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable
from xml.etree import ElementTree as ET  # output only
from xml.etree.ElementTree import ParseError

import defusedxml.ElementTree as DefET
import structlog
from defusedxml import DefusedXmlException

from saml_sso.saml.bindings import (
    DIGEST_ALIASES,
    SIGNATURE_ALIASES,
    BindingError,
    build_redirect_query,
    decode_post_payload,
    deflate_and_encode,
)
from saml_sso.saml.metadata import (
    ALG_NS,
    BINDING_HTTP_POST,
    BINDING_HTTP_REDIRECT,
    DS_NS,
    MD_NS,
    IdentityProviderDescriptor,
    ServiceProviderDescriptor,
)

log = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# SAML namespace map
# ---------------------------------------------------------------------------

SAML_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
SAMLP_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
PROTOCOL_ENUMERATION = SAMLP_NS

STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"
CM_BEARER = "urn:oasis:names:tc:SAML:2.0:cm:bearer"
NAMEID_UNSPECIFIED = "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified"

NAME_ID_ATTRIBUTE = "nameID"

_NS = {
    "saml": SAML_NS,
    "samlp": SAMLP_NS,
    "ds": DS_NS,
    "md": MD_NS,
}

ET.register_namespace("samlp", SAMLP_NS)
ET.register_namespace("saml", SAML_NS)
ET.register_namespace("md", MD_NS)
ET.register_namespace("ds", DS_NS)
ET.register_namespace("alg", ALG_NS)

DEFAULT_CLOCK_SKEW = timedelta(seconds=120)
DEFAULT_MAX_RESPONSE_BYTES = 256 * 1024

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SAMLError(Exception):
    """Base class for toolkit failures."""


class SAMLValidationError(SAMLError):
    """Raised when a SAML response cannot be validated."""


class SAMLSignatureError(SAMLValidationError):
    """Raised when signature validation fails."""


class SAMLRequestError(SAMLError):
    """Raised when an AuthnRequest cannot be built."""


# ---------------------------------------------------------------------------
# Schema validation hook
# ---------------------------------------------------------------------------


@runtime_checkable
class SchemaValidator(Protocol):
    """Validates a raw protocol message before it is parsed.

    Implementations raise any exception to reject the document.
    """

    def validate(self, xml_bytes: bytes) -> None: ...


class PermissiveSchemaValidator:
    """Accepts every document; structural checks happen during parsing."""

    def validate(self, xml_bytes: bytes) -> None:
        return None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthnRequestResult:
    redirect_url: str
    request_id: str
    relay_state: str | None = None


@dataclass(frozen=True)
class ParsedResponse:
    """Validated content of a SAML Response.

    ``attributes`` maps attribute names to a single string (one value) or a
    list of strings (several values).  The NameID is included under
    ``"nameID"``.
    """

    response_id: str
    assertion_id: str
    issuer: str | None
    name_id: str
    name_id_format: str
    session_index: str | None
    attributes: Mapping[str, str | list[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    relay_state: str | None = None


class SAMLToolkit(Protocol):
    async def build_authn_request(
        self,
        sp: ServiceProviderDescriptor,
        idp: IdentityProviderDescriptor,
        relay_state: str | None = None,
        additional_params: Mapping[str, str] | None = None,
    ) -> AuthnRequestResult: ...

    async def parse_and_validate_response(
        self,
        sp: ServiceProviderDescriptor,
        idp: IdentityProviderDescriptor,
        saml_response: str,
        relay_state: str | None = None,
    ) -> ParsedResponse: ...

    def render_metadata(self, sp: ServiceProviderDescriptor) -> str: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_xml_safe(xml_bytes: bytes) -> Any:
    try:
        return DefET.fromstring(xml_bytes)
    except (ParseError, DefusedXmlException) as exc:
        raise SAMLValidationError(f"SAML message is not acceptable XML: {exc}") from exc


def _find_text(element: Any, xpath: str) -> str | None:
    """Return the stripped text of the first matching sub-element, or None."""
    node = element.find(xpath, _NS)
    if node is None or node.text is None:
        return None
    return node.text.strip()


def _parse_instant(value: str, attribute: str) -> datetime:
    try:
        instant = datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise SAMLValidationError(f"Unparseable {attribute} timestamp: {value!r}") from exc
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant


def _format_instant(instant: datetime) -> str:
    return instant.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _cert_to_pem(cert_b64: str) -> bytes:
    body = "\n".join(cert_b64[i : i + 64] for i in range(0, len(cert_b64), 64))
    return f"-----BEGIN CERTIFICATE-----\n{body}\n-----END CERTIFICATE-----\n".encode(
        "ascii"
    )


def _assert_unique_ids(root: Any) -> None:
    ids = Counter(el.get("ID") for el in root.iter() if el.get("ID") is not None)
    duplicated = [value for value, count in ids.items() if count > 1]
    if duplicated:
        raise SAMLValidationError(f"Duplicate ID attributes in response: {duplicated}")


# ---------------------------------------------------------------------------
# Toolkit
# ---------------------------------------------------------------------------


class XMLSAMLToolkit:
    """Default :class:`SAMLToolkit` implementation.

    Usage:

        toolkit = XMLSAMLToolkit(clock_skew=timedelta(seconds=60))
        request = await toolkit.build_authn_request(sp, idp, relay_state="/app")
        parsed = await toolkit.parse_and_validate_response(sp, idp, form["SAMLResponse"])
    """

    def __init__(
        self,
        *,
        schema_validator: SchemaValidator | None = None,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.schema_validator: SchemaValidator = schema_validator or PermissiveSchemaValidator()
        self.clock_skew = clock_skew
        self.max_response_bytes = max_response_bytes
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # AuthnRequest
    # ------------------------------------------------------------------

    async def build_authn_request(
        self,
        sp: ServiceProviderDescriptor,
        idp: IdentityProviderDescriptor,
        relay_state: str | None = None,
        additional_params: Mapping[str, str] | None = None,
    ) -> AuthnRequestResult:
        """Create a SAML AuthnRequest for the HTTP-Redirect binding.

        Raises:
            SAMLRequestError: The IdP has no redirect-binding SSO endpoint, or
                signing was required and could not be performed.
        """

        def _sync_build() -> AuthnRequestResult:
            destination = idp.sso_url(BINDING_HTTP_REDIRECT)
            if not destination:
                raise SAMLRequestError(
                    "IdP descriptor has no HTTP-Redirect SingleSignOnService endpoint."
                )

            request_id = f"_{uuid.uuid4().hex}"
            request_xml = self._authn_request_xml(sp, destination, request_id)

            params: list[tuple[str, str]] = [("SAMLRequest", deflate_and_encode(request_xml))]
            if relay_state:
                params.append(("RelayState", relay_state))
            params.extend((additional_params or {}).items())

            private_key: str | None = None
            if sp.authn_requests_signed or idp.want_authn_requests_signed:
                if not sp.private_key:
                    raise SAMLRequestError(
                        "Signed AuthnRequests are required but no SP private key is configured."
                    )
                private_key = sp.private_key

            try:
                query = build_redirect_query(
                    params,
                    private_key_pem=private_key,
                    passphrase=sp.private_key_pass,
                    signature_algorithm=sp.signature_algorithm,
                )
            except BindingError as exc:
                raise SAMLRequestError(str(exc)) from exc

            separator = "&" if "?" in destination else "?"
            return AuthnRequestResult(
                redirect_url=f"{destination}{separator}{query}",
                request_id=request_id,
                relay_state=relay_state,
            )

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, _sync_build)
        log.info(
            "saml.auth_request_built",
            sp_entity_id=sp.entity_id,
            idp_entity_id=idp.entity_id,
            request_id=result.request_id,
        )
        return result

    def _authn_request_xml(
        self, sp: ServiceProviderDescriptor, destination: str, request_id: str
    ) -> str:
        request = ET.Element(
            f"{{{SAMLP_NS}}}AuthnRequest",
            {
                "ID": request_id,
                "Version": "2.0",
                "IssueInstant": _format_instant(self._clock()),
                "Destination": destination,
                "ProtocolBinding": BINDING_HTTP_POST,
            },
        )
        if sp.acs_url:
            request.set("AssertionConsumerServiceURL", sp.acs_url)
        ET.SubElement(request, f"{{{SAML_NS}}}Issuer").text = sp.entity_id
        ET.SubElement(
            request,
            f"{{{SAMLP_NS}}}NameIDPolicy",
            {
                "Format": sp.name_id_formats[0] if sp.name_id_formats else NAMEID_UNSPECIFIED,
                "AllowCreate": "true" if sp.allow_create else "false",
            },
        )
        return ET.tostring(request, encoding="unicode")

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    async def parse_and_validate_response(
        self,
        sp: ServiceProviderDescriptor,
        idp: IdentityProviderDescriptor,
        saml_response: str,
        relay_state: str | None = None,
    ) -> ParsedResponse:
        """Validate and parse a base64 POST-binding SAML Response.

        Raises:
            SAMLValidationError: On decoding, status, structure, issuer,
                audience, subject confirmation or time-window failures.
            SAMLSignatureError: When no trusted signature covers the
                response or assertion.
        """

        def _sync_parse() -> ParsedResponse:
            try:
                xml_bytes = decode_post_payload(saml_response, self.max_response_bytes)
            except BindingError as exc:
                raise SAMLValidationError(str(exc)) from exc

            try:
                self.schema_validator.validate(xml_bytes)
            except Exception as exc:
                raise SAMLValidationError(f"Schema validation failed: {exc}") from exc

            root = _parse_xml_safe(xml_bytes)
            if root.tag != f"{{{SAMLP_NS}}}Response":
                raise SAMLValidationError(f"Unexpected root element {root.tag!r}.")
            _assert_unique_ids(root)

            self._check_status(root)
            self._check_destination(root, sp)

            plain = root.findall("saml:Assertion", _NS)
            encrypted = root.findall("saml:EncryptedAssertion", _NS)
            if len(plain) + len(encrypted) != 1:
                raise SAMLValidationError(
                    "SAML Response must contain exactly one assertion, "
                    f"found {len(plain) + len(encrypted)}."
                )
            if sp.is_assertion_encrypted and not encrypted:
                raise SAMLValidationError("Assertion is required to be encrypted.")

            response_id = root.get("ID") or ""
            response_signed = root.find("ds:Signature", _NS) is not None
            signed_ids: set[str] = set()
            if response_signed:
                signed_ids |= self._verify_signatures(
                    xml_bytes, idp.signing_certs, frozenset({"Response"})
                )

            if encrypted:
                xml_bytes = self._decrypt_assertion(xml_bytes, sp)
                root = _parse_xml_safe(xml_bytes)
                _assert_unique_ids(root)

            assertion = root.find("saml:Assertion", _NS)
            if assertion is None:
                raise SAMLValidationError("SAML Response contains no Assertion.")
            assertion_id = assertion.get("ID") or ""

            if assertion.find("ds:Signature", _NS) is not None:
                signed_ids |= self._verify_signatures(
                    xml_bytes, idp.signing_certs, frozenset({"Assertion"})
                )

            assertion_trusted = bool(assertion_id) and assertion_id in signed_ids
            response_trusted = bool(response_id) and response_id in signed_ids
            if sp.want_assertions_signed and not assertion_trusted:
                raise SAMLSignatureError("Assertion is not signed by the IdP.")
            if not (assertion_trusted or response_trusted):
                raise SAMLSignatureError("Neither the Response nor the Assertion is signed.")

            issuer = self._check_issuer(root, assertion, idp)
            self._check_conditions(assertion, sp)
            self._check_subject_confirmation(assertion, sp)

            name_id_node = assertion.find("saml:Subject/saml:NameID", _NS)
            if name_id_node is None or not (name_id_node.text or "").strip():
                raise SAMLValidationError("Assertion missing NameID.")
            name_id = name_id_node.text.strip()

            authn_stmt = assertion.find("saml:AuthnStatement", _NS)
            session_index = authn_stmt.get("SessionIndex") if authn_stmt is not None else None

            attributes: dict[str, str | list[str]] = self._extract_attributes(assertion)
            attributes[NAME_ID_ATTRIBUTE] = name_id

            return ParsedResponse(
                response_id=response_id,
                assertion_id=assertion_id,
                issuer=issuer,
                name_id=name_id,
                name_id_format=name_id_node.get("Format", NAMEID_UNSPECIFIED),
                session_index=session_index,
                attributes=MappingProxyType(attributes),
                relay_state=relay_state,
            )

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, _sync_parse)
        log.info(
            "saml.response_parsed",
            response_id=result.response_id,
            issuer=result.issuer,
            attribute_count=len(result.attributes),
        )
        return result

    # ------------------------------------------------------------------
    # Signature validation / decryption (lxml + xmlsec)
    # ------------------------------------------------------------------

    def _verify_signatures(
        self,
        xml_bytes: bytes,
        signing_certs: tuple[str, ...],
        element_names: frozenset[str],
    ) -> set[str]:
        """Verify enveloped signatures on the named elements.

        Returns the IDs of elements whose signature verified against one of
        the IdP certificates.  A signature that fails verification raises.
        """
        if not signing_certs:
            raise SAMLSignatureError("No IdP signing certificate is configured.")
        try:
            import lxml.etree as lxml_et
            import xmlsec  # type: ignore[import-untyped]
        except ImportError as exc:
            log.critical(
                "saml.validate_signature.xmlsec_not_available",
                message="xmlsec not installed - signed responses cannot be verified. "
                "Install saml-sso[xmlsec].",
            )
            raise SAMLSignatureError("XML signature verification is unavailable.") from exc

        parser = lxml_et.XMLParser(resolve_entities=False, no_network=True)
        root = lxml_et.fromstring(xml_bytes, parser=parser)
        verified: set[str] = set()

        for signature in root.iter(f"{{{DS_NS}}}Signature"):
            signed_element = signature.getparent()
            if signed_element is None or _local_name(signed_element.tag) not in element_names:
                continue
            element_id = signed_element.get("ID")
            reference = signature.find("ds:SignedInfo/ds:Reference", _NS)
            if not element_id or reference is None or reference.get("URI") != f"#{element_id}":
                raise SAMLSignatureError(
                    f"Signature on {_local_name(signed_element.tag)} does not reference it."
                )

            last_error: Exception | None = None
            for cert in signing_certs:
                ctx = xmlsec.SignatureContext()
                ctx.key = xmlsec.Key.from_memory(
                    _cert_to_pem(cert), xmlsec.constants.KeyDataFormatCertPem
                )
                ctx.register_id(signed_element, "ID")
                try:
                    ctx.verify(signature)
                except xmlsec.Error as exc:
                    last_error = exc
                    continue
                verified.add(element_id)
                break
            else:
                log.warning(
                    "saml.validate_signature.invalid",
                    element=_local_name(signed_element.tag),
                    error=str(last_error),
                )
                raise SAMLSignatureError(
                    f"Signature on {_local_name(signed_element.tag)} is invalid."
                ) from last_error

        return verified

    def _decrypt_assertion(self, xml_bytes: bytes, sp: ServiceProviderDescriptor) -> bytes:
        """Replace the EncryptedAssertion with its decrypted Assertion."""
        if not sp.enc_private_key:
            raise SAMLValidationError(
                "Response carries an EncryptedAssertion but no decryption key is configured."
            )
        try:
            import lxml.etree as lxml_et
            import xmlsec  # type: ignore[import-untyped]
        except ImportError as exc:
            raise SAMLValidationError("Assertion decryption is unavailable.") from exc

        parser = lxml_et.XMLParser(resolve_entities=False, no_network=True)
        root = lxml_et.fromstring(xml_bytes, parser=parser)
        wrapper = root.find("saml:EncryptedAssertion", _NS)
        encrypted_data = xmlsec.tree.find_node(wrapper, xmlsec.constants.NodeEncryptedData)
        if encrypted_data is None:
            raise SAMLValidationError("EncryptedAssertion has no EncryptedData.")

        manager = xmlsec.KeysManager()
        try:
            manager.add_key(
                xmlsec.Key.from_memory(
                    sp.enc_private_key.encode("utf-8"),
                    xmlsec.constants.KeyDataFormatPem,
                    sp.enc_private_key_pass,
                )
            )
            assertion = xmlsec.EncryptionContext(manager).decrypt(encrypted_data)
        except xmlsec.Error as exc:
            raise SAMLValidationError(f"Assertion decryption failed: {exc}") from exc

        if _local_name(assertion.tag) != "Assertion":
            raise SAMLValidationError("Decrypted content is not an Assertion.")
        root.replace(wrapper, assertion)
        return lxml_et.tostring(root)

    # ------------------------------------------------------------------
    # Validation steps
    # ------------------------------------------------------------------

    @staticmethod
    def _check_status(root: Any) -> None:
        status_code_node = root.find("samlp:Status/samlp:StatusCode", _NS)
        if status_code_node is None:
            raise SAMLValidationError("SAML Response missing StatusCode.")
        status_value = status_code_node.get("Value", "")
        if status_value != STATUS_SUCCESS:
            raise SAMLValidationError(f"SAML authentication failed. Status: {status_value}")

    @staticmethod
    def _check_destination(root: Any, sp: ServiceProviderDescriptor) -> None:
        destination = root.get("Destination")
        if not destination:
            return
        allowed = {endpoint.location for endpoint in sp.assertion_consumer_services}
        if destination not in allowed:
            raise SAMLValidationError(
                f"Response Destination '{destination}' is not an ACS of this SP."
            )

    @staticmethod
    def _check_issuer(
        root: Any, assertion: Any, idp: IdentityProviderDescriptor
    ) -> str | None:
        assertion_issuer = _find_text(assertion, "saml:Issuer")
        response_issuer = _find_text(root, "saml:Issuer")
        if idp.entity_id:
            for issuer in (assertion_issuer, response_issuer):
                if issuer is not None and issuer != idp.entity_id:
                    raise SAMLValidationError(
                        f"Issuer '{issuer}' does not match expected entity_id "
                        f"'{idp.entity_id}'."
                    )
            if assertion_issuer is None:
                raise SAMLValidationError("Assertion missing Issuer.")
        return assertion_issuer or response_issuer

    def _check_conditions(self, assertion: Any, sp: ServiceProviderDescriptor) -> None:
        """Check NotBefore / NotOnOrAfter and AudienceRestriction."""
        conditions = assertion.find("saml:Conditions", _NS)
        if conditions is None:
            if sp.audience:
                raise SAMLValidationError("Assertion has no Conditions to check the audience.")
            return

        now = self._clock()
        not_before = conditions.get("NotBefore")
        if not_before and now + self.clock_skew < _parse_instant(not_before, "NotBefore"):
            raise SAMLValidationError(f"Assertion not yet valid (NotBefore: {not_before}).")

        not_on_or_after = conditions.get("NotOnOrAfter")
        if not_on_or_after and now - self.clock_skew >= _parse_instant(
            not_on_or_after, "NotOnOrAfter"
        ):
            raise SAMLValidationError(
                f"Assertion has expired (NotOnOrAfter: {not_on_or_after})."
            )

        restrictions = conditions.findall("saml:AudienceRestriction", _NS)
        if not restrictions:
            if sp.audience:
                raise SAMLValidationError("Assertion has no AudienceRestriction.")
            return
        expected = sp.expected_audience
        # every restriction must be satisfied
        for restriction in restrictions:
            audiences = {
                (node.text or "").strip()
                for node in restriction.findall("saml:Audience", _NS)
            }
            if expected not in audiences:
                raise SAMLValidationError(
                    f"Assertion audience {sorted(audiences)} does not include '{expected}'."
                )

    def _check_subject_confirmation(
        self, assertion: Any, sp: ServiceProviderDescriptor
    ) -> None:
        confirmations = [
            node
            for node in assertion.findall("saml:Subject/saml:SubjectConfirmation", _NS)
            if node.get("Method") == CM_BEARER
        ]
        if not confirmations:
            return
        allowed = {endpoint.location for endpoint in sp.assertion_consumer_services}
        now = self._clock()
        errors: list[str] = []
        for confirmation in confirmations:
            data = confirmation.find("saml:SubjectConfirmationData", _NS)
            if data is None:
                return
            recipient = data.get("Recipient")
            if recipient and recipient not in allowed:
                errors.append(f"Recipient '{recipient}' is not an ACS of this SP")
                continue
            expiry = data.get("NotOnOrAfter")
            if expiry and now - self.clock_skew >= _parse_instant(expiry, "NotOnOrAfter"):
                errors.append(f"SubjectConfirmationData expired at {expiry}")
                continue
            return
        raise SAMLValidationError("No valid bearer SubjectConfirmation: " + "; ".join(errors))

    @staticmethod
    def _extract_attributes(assertion: Any) -> dict[str, str | list[str]]:
        """Collect AttributeStatement values; single values are unwrapped."""
        attributes: dict[str, str | list[str]] = {}
        for attr in assertion.findall("saml:AttributeStatement/saml:Attribute", _NS):
            attr_name = attr.get("Name", "")
            if not attr_name:
                continue
            values = [
                (v.text or "").strip()
                for v in attr.findall("saml:AttributeValue", _NS)
                if v.text
            ]
            if not values:
                continue
            attributes[attr_name] = values[0] if len(values) == 1 else values
        return attributes

    # ------------------------------------------------------------------
    # SP Metadata
    # ------------------------------------------------------------------

    def render_metadata(self, sp: ServiceProviderDescriptor) -> str:
        """Return SP metadata XML for distribution to IdPs."""
        entity = ET.Element(f"{{{MD_NS}}}EntityDescriptor", {"entityID": sp.entity_id})
        descriptor = ET.SubElement(
            entity,
            f"{{{MD_NS}}}SPSSODescriptor",
            {
                "AuthnRequestsSigned": "true" if sp.authn_requests_signed else "false",
                "WantAssertionsSigned": "true" if sp.want_assertions_signed else "false",
                "protocolSupportEnumeration": PROTOCOL_ENUMERATION,
            },
        )
        if sp.digest_algorithm or sp.signature_algorithm:
            # SAML metadata algorithm support profile; Extensions must come first
            extensions = ET.SubElement(descriptor, f"{{{MD_NS}}}Extensions")
            for tag, name, aliases in (
                ("DigestMethod", sp.digest_algorithm, DIGEST_ALIASES),
                ("SigningMethod", sp.signature_algorithm, SIGNATURE_ALIASES),
            ):
                if name:
                    ET.SubElement(
                        extensions,
                        f"{{{ALG_NS}}}{tag}",
                        {"Algorithm": aliases.get(name.lower(), name)},
                    )
        for use, certs in (("signing", sp.signing_certs), ("encryption", sp.encryption_certs)):
            for cert in certs:
                key = ET.SubElement(descriptor, f"{{{MD_NS}}}KeyDescriptor", {"use": use})
                key_info = ET.SubElement(key, f"{{{DS_NS}}}KeyInfo")
                x509 = ET.SubElement(key_info, f"{{{DS_NS}}}X509Data")
                ET.SubElement(x509, f"{{{DS_NS}}}X509Certificate").text = cert
        for name_id_format in sp.name_id_formats:
            ET.SubElement(descriptor, f"{{{MD_NS}}}NameIDFormat").text = name_id_format
        for index, endpoint in enumerate(sp.assertion_consumer_services):
            ET.SubElement(
                descriptor,
                f"{{{MD_NS}}}AssertionConsumerService",
                {
                    "Binding": endpoint.binding,
                    "Location": endpoint.location,
                    "index": str(index),
                    **({"isDefault": "true"} if index == 0 else {}),
                },
            )
        body = ET.tostring(entity, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}'
