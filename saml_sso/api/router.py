"""Main API router - aggregates all sub-routers.

SSO routes are versioned under /api/v1; health checks are not.
"""

from __future__ import annotations

from fastapi import APIRouter

from saml_sso.api import health, sso

# Public router (no version prefix)
public_router = APIRouter()
public_router.include_router(health.router)

# Versioned API router
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(sso.router)
