"""SSO / SAML 2.0 endpoints.

Prefix: /api/v1/sso/saml2

Routes:
    GET  /sp/metadata?providerId=&format=xml|json  - SP metadata for a provider
    POST /register                                 - Register a provider (session required)
    POST /sign-in                                  - Build the redirect to the IdP
    POST /callback/{provider_id}                   - Assertion Consumer Service

Authentication:
    - metadata, sign-in and callback are public: they are the SAML flow.
    - register requires an authenticated session.

Errors are raised as saml_sso.errors.SSOError subclasses and rendered by the
application's exception handler as ``{"code", "message"}``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from saml_sso.api.dependencies import (
    get_assertion_consumer,
    get_login_builder,
    get_metadata_publisher,
    get_provisioner,
    get_registry,
)
from saml_sso.auth.dependencies import AuthenticatedUser, get_current_user
from saml_sso.config import Settings, get_settings
from saml_sso.errors import BadRequestError
from saml_sso.services.assertion import AssertionConsumer
from saml_sso.services.login import LoginRequestBuilder
from saml_sso.services.metadata import MetadataFormat, MetadataPublisher
from saml_sso.services.provisioning import IdentityProvisioner, resolve_redirect_url
from saml_sso.services.registry import ProviderRegistry
from saml_sso.telemetry.logging import bind_provider_context, bind_user_context

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sso/saml2", tags=["sso"])

# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisteredProviderResponse(_CamelModel):
    """A stored provider with its configuration echoed back parsed."""

    id: uuid.UUID
    provider_id: str
    issuer: str
    saml_config: dict[str, Any]
    created_at: datetime


class SignInRequest(_CamelModel):
    provider_id: str = Field(..., min_length=1)
    callback_url: str | None = Field(
        None,
        alias="callbackURL",
        description="Where to send the browser after login; round-tripped as RelayState",
    )


class RedirectResponseBody(BaseModel):
    url: str
    redirect: bool = True


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get(
    "/sp/metadata",
    response_class=Response,
    summary="Return SP metadata for a provider",
)
async def get_sp_metadata(
    provider_id: str = Query(..., alias="providerId", min_length=1),
    format: MetadataFormat = Query(MetadataFormat.XML),
    publisher: MetadataPublisher = Depends(get_metadata_publisher),
) -> Response:
    """Return the Service Provider metadata IdP administrators import."""
    bind_provider_context(provider_id)
    document = await publisher.publish(provider_id, format)
    if document.format is MetadataFormat.JSON:
        return JSONResponse(content=document.content)
    return Response(content=document.content, media_type=document.media_type)


@router.post(
    "/register",
    response_model=RegisteredProviderResponse,
    summary="Register a SAML identity provider",
)
async def register_provider(
    payload: dict[str, Any] = Body(..., description="SAMLConfig document"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    registry: ProviderRegistry = Depends(get_registry),
) -> RegisteredProviderResponse:
    """Validate and store a provider configuration.

    422 when the document fails validation, 409 when providerId is taken.
    """
    provider = await registry.register(payload)
    log.info(
        "sso.register_requested",
        provider_id=provider.provider_id,
        registered_by=str(current_user.id),
    )
    return RegisteredProviderResponse(
        id=provider.id,
        provider_id=provider.provider_id,
        issuer=provider.issuer,
        saml_config=provider.config.to_wire(),
        created_at=provider.created_at,
    )


@router.post(
    "/sign-in",
    response_model=RedirectResponseBody,
    summary="Start SP-initiated SAML login",
)
async def sign_in(
    body: SignInRequest,
    builder: LoginRequestBuilder = Depends(get_login_builder),
) -> RedirectResponseBody:
    bind_provider_context(body.provider_id)
    redirect = await builder.build_login_redirect(
        body.provider_id, relay_state=body.callback_url
    )
    return RedirectResponseBody(url=redirect.url)


@router.post(
    "/callback/{provider_id}",
    response_model=RedirectResponseBody,
    summary="SAML Assertion Consumer Service",
)
async def saml_callback(
    provider_id: str,
    request: Request,
    consumer: AssertionConsumer = Depends(get_assertion_consumer),
    provisioner: IdentityProvisioner = Depends(get_provisioner),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Process a SAML Response POSTed by the IdP.

    1. Validate the response and map its attributes to an identity.
    2. Find or create the user (or delegate to the provision_user hook).
    3. Provision organization membership when enabled.
    4. Issue a session cookie and return the post-login redirect target.
    """
    bind_provider_context(provider_id)
    saml_response, relay_state = await _read_callback_body(request)

    consumed = await consumer.consume(provider_id, saml_response, relay_state)
    result = await provisioner.provision(consumed.identity, request)
    bind_user_context(result.user.id)

    url = resolve_redirect_url(
        consumed.relay_state,
        consumed.provider.issuer,
        settings.saml_default_redirect_path,
    )
    response = JSONResponse(content=RedirectResponseBody(url=url).model_dump())
    provisioner.sessions.set_session_cookie(response, result.session)
    log.info(
        "sso.callback_completed",
        provider_id=provider_id,
        user_id=str(result.user.id),
        organization_id=result.organization_id,
    )
    return response


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _read_callback_body(request: Request) -> tuple[str, str | None]:
    """Extract SAMLResponse / RelayState from a form or JSON body."""
    content_type = request.headers.get("content-type", "")
    data: Any
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError as exc:
            raise BadRequestError("Callback body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise BadRequestError("Callback body must be an object")
    else:
        data = await request.form()

    saml_response = data.get("SAMLResponse")
    if not isinstance(saml_response, str) or not saml_response.strip():
        raise BadRequestError("Missing SAMLResponse")
    relay_state = data.get("RelayState")
    if not isinstance(relay_state, str) or not relay_state:
        relay_state = None
    return saml_response, relay_state
