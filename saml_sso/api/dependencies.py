"""Service wiring for the SSO routes.

The SAML toolkit and the collaborator hooks are configured once in
create_app() and kept on ``app.state``; everything else is request scoped
and shares the request's database session (one transaction per request).
"""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from saml_sso.config import Settings, get_settings
from saml_sso.database import get_db_session
from saml_sso.options import SSOOptions
from saml_sso.saml.toolkit import SAMLToolkit
from saml_sso.services.assertion import AssertionConsumer
from saml_sso.services.login import LoginRequestBuilder
from saml_sso.services.metadata import MetadataPublisher
from saml_sso.services.provisioning import IdentityProvisioner
from saml_sso.services.registry import ProviderRegistry


def get_toolkit(request: Request) -> SAMLToolkit:
    return request.app.state.saml_toolkit


def get_sso_options(request: Request) -> SSOOptions:
    return request.app.state.sso_options


def get_registry(
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> ProviderRegistry:
    return ProviderRegistry(db, settings)


def get_metadata_publisher(
    registry: ProviderRegistry = Depends(get_registry),
    toolkit: SAMLToolkit = Depends(get_toolkit),
) -> MetadataPublisher:
    return MetadataPublisher(registry, toolkit)


def get_login_builder(
    registry: ProviderRegistry = Depends(get_registry),
    toolkit: SAMLToolkit = Depends(get_toolkit),
) -> LoginRequestBuilder:
    return LoginRequestBuilder(registry, toolkit)


def get_assertion_consumer(
    registry: ProviderRegistry = Depends(get_registry),
    toolkit: SAMLToolkit = Depends(get_toolkit),
) -> AssertionConsumer:
    return AssertionConsumer(registry, toolkit)


def get_provisioner(
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    options: SSOOptions = Depends(get_sso_options),
) -> IdentityProvisioner:
    return IdentityProvisioner(db, settings, options)
