"""Typed service errors.

Every failure that reaches a client is one of these. The application's
exception handler renders them as ``{"code": ..., "message": ...}`` with the
matching HTTP status, so route handlers never build error responses by hand.
"""

from __future__ import annotations

from typing import Any


class SSOError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(SSOError):
    """No provider is registered under the requested providerId."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(SSOError):
    """A provider with the same providerId already exists."""

    status_code = 409
    code = "CONFLICT"


class ConfigValidationError(SSOError):
    """A provider configuration failed schema validation."""

    status_code = 422
    code = "VALIDATION_ERROR"


class BadRequestError(SSOError):
    """The SAML response or the login request could not be processed."""

    status_code = 400
    code = "BAD_REQUEST"


class UnauthorizedError(SSOError):
    status_code = 401
    code = "UNAUTHORIZED"


class ProvisioningError(SSOError):
    """A ``provision_user`` hook returned something that cannot be persisted."""
