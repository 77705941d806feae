"""FastAPI application entrypoint.

Application startup order:
1. Load settings (from environment)
2. Configure structured logging
3. Initialize database engine and session factory

Shutdown order:
1. Close DB connection pool

Embedding applications call ``create_app(options=SSOOptions(...))`` to
install their provisioning hooks; uvicorn serves the module-level ``app``
with defaults.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from saml_sso import __version__
from saml_sso.api.router import api_v1_router, public_router
from saml_sso.config import Settings, get_settings
from saml_sso.database import close_db, init_db
from saml_sso.errors import ConfigValidationError, SSOError
from saml_sso.options import SSOOptions
from saml_sso.saml.toolkit import SAMLToolkit, XMLSAMLToolkit
from saml_sso.telemetry.logging import RequestIdMiddleware, configure_logging

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    settings = get_settings()

    # Configure structured logging first (before any log calls)
    configure_logging(
        json_logs=settings.is_prod,
        log_level="DEBUG" if settings.debug else "INFO",
    )

    log.info(
        "app.starting",
        environment=settings.environment,
        db_url=settings.database_url.split("@")[-1],
    )

    init_db(settings)

    log.info("app.ready")
    yield

    await close_db()
    log.info("app.shutdown")


def build_default_toolkit(settings: Settings) -> XMLSAMLToolkit:
    return XMLSAMLToolkit(
        clock_skew=timedelta(seconds=settings.saml_clock_skew_seconds),
        max_response_bytes=settings.saml_max_response_bytes,
    )


def create_app(
    options: SSOOptions | None = None,
    toolkit: SAMLToolkit | None = None,
) -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title="SAML SSO",
        description=(
            "Service-Provider-initiated SAML 2.0 single sign-on with per-tenant "
            "identity provider registration."
        ),
        version=__version__,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
        lifespan=lifespan,
    )

    app.state.sso_options = options or SSOOptions()
    app.state.saml_toolkit = toolkit or build_default_toolkit(settings)

    # ------------------------------------------------------------------ #
    # Middleware (added in reverse order - last added = first executed)
    # ------------------------------------------------------------------ #

    # Session cookies cross origins only to configured frontends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # Unique request ID for log correlation
    app.add_middleware(RequestIdMiddleware)

    # ------------------------------------------------------------------ #
    # Routers
    # ------------------------------------------------------------------ #
    app.include_router(public_router)
    app.include_router(api_v1_router)

    # ------------------------------------------------------------------ #
    # Exception handlers
    # ------------------------------------------------------------------ #

    @app.exception_handler(SSOError)
    async def sso_error_handler(request: Request, exc: SSOError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(
                "app.request_failed",
                path=request.url.path,
                code=exc.code,
                error=exc.message,
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={"code": exc.code, "message": "Internal server error"},
            )
        log.info(
            "app.request_failed",
            path=request.url.path,
            code=exc.code,
            status_code=exc.status_code,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        error = ConfigValidationError("Request validation failed", details=details)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "app.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"code": SSOError.code, "message": "Internal server error"},
        )

    return app


# Module-level app instance for uvicorn
app = create_app()
