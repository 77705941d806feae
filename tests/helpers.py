"""SAML documents and doubles shared by the test modules.

Builders return real metadata / response XML.  Signatures are stubbed:
``<ds:Signature>`` elements carry only a Reference, and
:class:`StubSignatureToolkit` treats a signature as valid unless its
SignatureValue is ``invalid``.  Real signatures and encryption are exercised
in test_xmlsec_signatures.py.
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from textwrap import dedent
from typing import Any

import defusedxml.ElementTree as DefET

from saml_sso.saml.toolkit import DS_NS, SAMLSignatureError, XMLSAMLToolkit

# ---------------------------------------------------------------------------
# Identities and endpoints
# ---------------------------------------------------------------------------

SP_ISSUER = "https://app.example.com"
SP_ENTITY_ID = "https://app.example.com/saml/sp"
IDP_ENTITY_ID = "https://idp.example.com/metadata"
IDP_SSO_URL = "https://idp.example.com/sso/saml"
PROVIDER_ID = "acme-okta"

SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"
EMAIL_FORMAT = "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"

# Not a real certificate: signatures are stubbed in these tests
SAMPLE_CERT_B64 = (
    "MIICpDCCAYwCCQDU+pQ4pHgSpDANBgkqhkiG9w0BAQsFADAUMRIwEAYDVQQDDAls"
    "b2NhbGhvc3QwHhcNMjMwMTAxMDAwMDAwWhcNMjQwMTAxMDAwMDAwWjAUMRIwEAYD"
)
SAMPLE_CERT_PEM = (
    "-----BEGIN CERTIFICATE-----\n"
    f"{SAMPLE_CERT_B64[:64]}\n{SAMPLE_CERT_B64[64:]}\n"
    "-----END CERTIFICATE-----"
)

_FMT = "%Y-%m-%dT%H:%M:%SZ"


def acs_url(provider_id: str = PROVIDER_ID) -> str:
    return f"{SP_ISSUER}/api/v1/sso/saml2/callback/{provider_id}"


def fmt(instant: datetime) -> str:
    return instant.strftime(_FMT)


# ---------------------------------------------------------------------------
# Metadata documents
# ---------------------------------------------------------------------------


def sp_metadata_xml(
    provider_id: str = PROVIDER_ID,
    *,
    entity_id: str = SP_ENTITY_ID,
    authn_requests_signed: bool = False,
    want_assertions_signed: bool = False,
    with_acs: bool = True,
) -> str:
    acs = (
        f'<md:AssertionConsumerService Binding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"'
        f' Location="{acs_url(provider_id)}" index="0"/>'
        if with_acs
        else ""
    )
    return dedent(f"""\
        <md:EntityDescriptor xmlns:md="urn:oasis:names:tc:SAML:2.0:metadata"
            xmlns:ds="http://www.w3.org/2000/09/xmldsig#"
            entityID="{entity_id}">
          <md:SPSSODescriptor
              AuthnRequestsSigned="{str(authn_requests_signed).lower()}"
              WantAssertionsSigned="{str(want_assertions_signed).lower()}"
              protocolSupportEnumeration="urn:oasis:names:tc:SAML:2.0:protocol">
            <md:KeyDescriptor use="signing">
              <ds:KeyInfo><ds:X509Data>
                <ds:X509Certificate>{SAMPLE_CERT_B64}</ds:X509Certificate>
              </ds:X509Data></ds:KeyInfo>
            </md:KeyDescriptor>
            <md:NameIDFormat>{EMAIL_FORMAT}</md:NameIDFormat>
            {acs}
          </md:SPSSODescriptor>
        </md:EntityDescriptor>
        """)


def idp_metadata_xml(
    *,
    entity_id: str = IDP_ENTITY_ID,
    sso_url: str | None = IDP_SSO_URL,
    want_authn_requests_signed: bool = False,
) -> str:
    sso = (
        f'<md:SingleSignOnService Binding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"'
        f' Location="{sso_url}"/>'
        if sso_url
        else ""
    )
    return dedent(f"""\
        <md:EntityDescriptor xmlns:md="urn:oasis:names:tc:SAML:2.0:metadata"
            xmlns:ds="http://www.w3.org/2000/09/xmldsig#"
            entityID="{entity_id}">
          <md:IDPSSODescriptor
              WantAuthnRequestsSigned="{str(want_authn_requests_signed).lower()}"
              protocolSupportEnumeration="urn:oasis:names:tc:SAML:2.0:protocol">
            <md:KeyDescriptor use="signing">
              <ds:KeyInfo><ds:X509Data>
                <ds:X509Certificate>{SAMPLE_CERT_B64}</ds:X509Certificate>
              </ds:X509Data></ds:KeyInfo>
            </md:KeyDescriptor>
            {sso}
          </md:IDPSSODescriptor>
        </md:EntityDescriptor>
        """)


def make_config(provider_id: str = PROVIDER_ID, **overrides: Any) -> dict[str, Any]:
    """A valid SAMLConfig document in wire (camelCase) form."""
    config: dict[str, Any] = {
        "entryPoint": IDP_SSO_URL,
        "providerId": provider_id,
        "issuer": SP_ISSUER,
        "cert": SAMPLE_CERT_PEM,
        "callbackUrl": acs_url(provider_id),
        "idpMetadata": {"metadata": idp_metadata_xml()},
        "spMetadata": {"metadata": sp_metadata_xml(provider_id)},
    }
    config.update(overrides)
    return config


# ---------------------------------------------------------------------------
# SAML Responses
# ---------------------------------------------------------------------------


def _signature(reference_id: str, value: str = "stub") -> str:
    return (
        f'<ds:Signature xmlns:ds="{DS_NS}"><ds:SignedInfo>'
        f'<ds:Reference URI="#{reference_id}"/></ds:SignedInfo>'
        f"<ds:SignatureValue>{value}</ds:SignatureValue></ds:Signature>"
    )


def _assertion(
    assertion_id: str,
    *,
    issuer: str,
    name_id: str,
    attributes: dict[str, str | list[str]],
    audience: str | None,
    recipient: str,
    not_before: str,
    not_on_or_after: str,
    signed: bool,
    signature_value: str,
) -> str:
    attribute_xml = "".join(
        f'<saml:Attribute Name="{name}">'
        + "".join(
            f"<saml:AttributeValue>{v}</saml:AttributeValue>"
            for v in ([value] if isinstance(value, str) else value)
        )
        + "</saml:Attribute>"
        for name, value in attributes.items()
    )
    audience_xml = (
        f"<saml:AudienceRestriction><saml:Audience>{audience}</saml:Audience>"
        "</saml:AudienceRestriction>"
        if audience
        else ""
    )
    return (
        f'<saml:Assertion ID="{assertion_id}" Version="2.0" IssueInstant="{not_before}">'
        f"<saml:Issuer>{issuer}</saml:Issuer>"
        + (_signature(assertion_id, signature_value) if signed else "")
        + "<saml:Subject>"
        f'<saml:NameID Format="{EMAIL_FORMAT}">{name_id}</saml:NameID>'
        '<saml:SubjectConfirmation Method="urn:oasis:names:tc:SAML:2.0:cm:bearer">'
        f'<saml:SubjectConfirmationData Recipient="{recipient}" NotOnOrAfter="{not_on_or_after}"/>'
        "</saml:SubjectConfirmation>"
        "</saml:Subject>"
        f'<saml:Conditions NotBefore="{not_before}" NotOnOrAfter="{not_on_or_after}">'
        f"{audience_xml}</saml:Conditions>"
        f'<saml:AuthnStatement SessionIndex="_session789" AuthnInstant="{not_before}"/>'
        f"<saml:AttributeStatement>{attribute_xml}</saml:AttributeStatement>"
        "</saml:Assertion>"
    )


def make_saml_response_xml(
    *,
    name_id: str = "u1",
    attributes: dict[str, str | list[str]] | None = None,
    status: str = SUCCESS,
    issuer: str = IDP_ENTITY_ID,
    audience: str | None = SP_ENTITY_ID,
    destination: str | None = None,
    recipient: str | None = None,
    provider_id: str = PROVIDER_ID,
    not_before: datetime | None = None,
    not_on_or_after: datetime | None = None,
    sign_response: bool = True,
    sign_assertion: bool = False,
    signature_value: str = "stub",
    assertion_count: int = 1,
    response_id: str = "_resp1",
    assertion_id: str = "_assert1",
) -> str:
    now = datetime.now(timezone.utc)
    if attributes is None:
        attributes = {
            "email": "a@x.com",
            "givenName": "Ada",
            "surname": "Lovelace",
        }
    nb = fmt(not_before or now - timedelta(minutes=5))
    noa = fmt(not_on_or_after or now + timedelta(hours=1))
    assertions = "".join(
        _assertion(
            assertion_id if i == 0 else f"{assertion_id}_{i}",
            issuer=issuer,
            name_id=name_id,
            attributes=attributes,
            audience=audience,
            recipient=recipient or acs_url(provider_id),
            not_before=nb,
            not_on_or_after=noa,
            signed=sign_assertion,
            signature_value=signature_value,
        )
        for i in range(assertion_count)
    )
    destination_attr = f' Destination="{destination or acs_url(provider_id)}"'
    return (
        '<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol"'
        ' xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion"'
        f' ID="{response_id}" Version="2.0" IssueInstant="{nb}"{destination_attr}>'
        f"<saml:Issuer>{issuer}</saml:Issuer>"
        + (_signature(response_id, signature_value) if sign_response else "")
        + f'<samlp:Status><samlp:StatusCode Value="{status}"/></samlp:Status>'
        + assertions
        + "</samlp:Response>"
    )


def make_saml_response(**kwargs: Any) -> str:
    """Base64 POST-binding form of :func:`make_saml_response_xml`."""
    return base64.b64encode(make_saml_response_xml(**kwargs).encode("utf-8")).decode("ascii")


# ---------------------------------------------------------------------------
# Toolkit double
# ---------------------------------------------------------------------------


class StubSignatureToolkit(XMLSAMLToolkit):
    """XMLSAMLToolkit with stubbed XML-Signature checking.

    Everything except the cryptographic verification runs for real.
    """

    def _verify_signatures(
        self,
        xml_bytes: bytes,
        signing_certs: tuple[str, ...],
        element_names: frozenset[str],
    ) -> set[str]:
        if not signing_certs:
            raise SAMLSignatureError("No IdP signing certificate is configured.")
        root = DefET.fromstring(xml_bytes)
        verified: set[str] = set()
        for element in root.iter():
            if element.tag.rsplit("}", 1)[-1] not in element_names:
                continue
            signature = element.find(f"{{{DS_NS}}}Signature")
            if signature is None:
                continue
            value = signature.findtext(f"{{{DS_NS}}}SignatureValue")
            reference = signature.find(f"{{{DS_NS}}}SignedInfo/{{{DS_NS}}}Reference")
            if value == "invalid" or reference is None:
                raise SAMLSignatureError("Signature is invalid.")
            if reference.get("URI") == f"#{element.get('ID')}":
                verified.add(element.get("ID"))
        return verified
