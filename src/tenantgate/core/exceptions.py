"""Domain-specific exceptions.

All exceptions in the tenantgate system inherit from TenantgateError.
Each class carries a stable machine-readable ``code`` and the HTTP status
the API layer renders it with, so route handlers never translate errors
by hand.
"""

from __future__ import annotations

from typing import Any


class TenantgateError(Exception):
    """Base exception for all tenantgate errors.

    Attributes:
        code: Stable machine-readable error code.
        status_code: HTTP status used when the error reaches the API layer.
        details: Optional list of human-readable detail strings.
    """

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: list[str] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable message; falls back to the class default.
            details: Optional detail strings surfaced to the caller.
        """
        self.message = message or self.default_message
        self.details = details or []
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ``error`` member of the response envelope."""
        return {"code": self.code, "message": self.message, "details": self.details}


# Authentication


class AuthenticationFailure(TenantgateError):
    """Credentials or token could not be verified.

    The message is deliberately identical for every cause so callers cannot
    tell an unknown email from a wrong password.
    """

    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class BadCredentials(AuthenticationFailure):
    """Login failed: unknown email, wrong password, or no password set."""

    code = "BAD_CREDENTIALS"
    default_message = "Invalid email or password"


# Authorization


class AuthorizationFailure(TenantgateError):
    """Caller is authenticated but not allowed to proceed."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "You do not have permission to perform this action"


class AccountDisabled(AuthorizationFailure):
    """Account status is not ``active``."""

    code = "ACCOUNT_DISABLED"
    default_message = "This account has been disabled"


class NoTenant(AuthorizationFailure):
    """Account has no membership in any (or the requested) tenant."""

    code = "NO_TENANT"
    default_message = "Account does not belong to any company"


class PermissionDenied(AuthorizationFailure):
    """Role is below what the operation requires."""

    pass


class CapacityExceeded(AuthorizationFailure):
    """Tenant license limit reached.

    Raised both when issuing an invitation and when redeeming one, since
    memberships can be added between the two.
    """

    code = "LICENSE_LIMIT_EXCEEDED"
    default_message = "The company has reached its user limit"

    def __init__(self, current: int, limit: int) -> None:
        """Initialize with the observed count and the configured limit."""
        super().__init__(
            f"The company has reached its user limit (current: {current}, limit: {limit})"
        )
        self.current = current
        self.limit = limit


# Not found


class NotFound(TenantgateError):
    """Referenced entity does not exist (or is soft-deleted)."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class InvitationNotFound(NotFound):
    """No invitation matches the token."""

    code = "INVITATION_NOT_FOUND"
    default_message = "Invitation not found"


class ResetTokenNotFound(NotFound):
    """No unused password reset token matches."""

    code = "RESET_TOKEN_NOT_FOUND"
    default_message = "Password reset token not found"


class TenantNotFound(NotFound):
    """Tenant id does not resolve to a live tenant."""

    code = "TENANT_NOT_FOUND"
    default_message = "Company not found"


class AccountNotFound(NotFound):
    """Account id does not resolve to a live account."""

    code = "ACCOUNT_NOT_FOUND"
    default_message = "Account not found"


# Conflict


class InvitationInvalid(TenantgateError):
    """Invitation exists but is expired, used up, or canceled."""

    code = "INVITATION_INVALID"
    status_code = 409
    default_message = "Invitation is invalid or has expired"


class ResetTokenInvalid(TenantgateError):
    """Password reset token is expired or already used."""

    code = "RESET_TOKEN_INVALID"
    status_code = 409
    default_message = "Password reset token is invalid or has expired"


# Validation


class ValidationFailure(TenantgateError):
    """Request is well-formed but semantically invalid."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input"


class EmailMismatch(ValidationFailure):
    """Registration email differs from the invitation email."""

    code = "EMAIL_MISMATCH"
    default_message = "Email does not match the invitation"


class UnexpectedPassword(ValidationFailure):
    """A password was supplied while redeeming into an existing account."""

    code = "UNEXPECTED_PASSWORD"
    default_message = "A password must not be supplied for an existing account"


class MissingRequiredField(ValidationFailure):
    """A field required on the new-account path is absent."""

    code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field: str) -> None:
        """Initialize with the name of the missing field."""
        super().__init__(f"{field} is required for a new account", details=[field])
        self.field = field


class TenantContextMissing(ValidationFailure):
    """Operation needs an active tenant but none is set for this request."""

    code = "TENANT_CONTEXT_MISSING"
    default_message = "No company is selected for this request"
