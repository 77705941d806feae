"""Service-Provider-initiated SAML 2.0 single sign-on."""

__version__ = "0.1.0"
