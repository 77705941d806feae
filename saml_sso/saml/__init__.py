"""SAML 2.0 protocol layer: provider config schema, descriptors, toolkit.

Nothing in this package touches the database or HTTP layer; services pass
descriptors in and get typed results back.
"""

from __future__ import annotations

from saml_sso.saml.config import AttributeMapping, SAMLConfig
from saml_sso.saml.metadata import (
    IdentityProviderDescriptor,
    ServiceProviderDescriptor,
    build_idp_descriptor,
    build_sp_descriptor,
)
from saml_sso.saml.toolkit import (
    AuthnRequestResult,
    ParsedResponse,
    SAMLError,
    SAMLToolkit,
    XMLSAMLToolkit,
)

__all__ = [
    "AttributeMapping",
    "AuthnRequestResult",
    "IdentityProviderDescriptor",
    "ParsedResponse",
    "SAMLConfig",
    "SAMLError",
    "SAMLToolkit",
    "ServiceProviderDescriptor",
    "XMLSAMLToolkit",
    "build_idp_descriptor",
    "build_sp_descriptor",
]
