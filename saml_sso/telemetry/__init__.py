"""Telemetry package: structured logging and request correlation."""

from __future__ import annotations

from saml_sso.telemetry.logging import (
    RequestIdMiddleware,
    bind_provider_context,
    bind_user_context,
    clear_context,
    configure_logging,
)

__all__ = [
    "RequestIdMiddleware",
    "bind_provider_context",
    "bind_user_context",
    "clear_context",
    "configure_logging",
]
