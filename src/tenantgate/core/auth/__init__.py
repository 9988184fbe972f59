"""Auth domain types and services."""

from tenantgate.core.auth.bootstrap import BootstrapIdentity
from tenantgate.core.auth.invitations import InvitationLedger, InvitationPreview
from tenantgate.core.auth.jwt import TokenCodec, TokenError
from tenantgate.core.auth.password import hash_password, password_problems, verify_password
from tenantgate.core.auth.password_reset import (
    LoggingResetNotifier,
    PasswordResetService,
    ResetNotifier,
)
from tenantgate.core.auth.registration import IdentityRegistrar, RegistrationRequest
from tenantgate.core.auth.repository import DuplicateKeyError, IdentityRepository
from tenantgate.core.auth.service import (
    AuthService,
    LoginResult,
    MembershipSelector,
    Profile,
    first_joined,
)
from tenantgate.core.auth.types import (
    Account,
    AccountStatus,
    Employment,
    EmploymentType,
    Invitation,
    InvitationStatus,
    MemberRole,
    Membership,
    PasswordResetToken,
    Tenant,
    TokenPayload,
)

__all__ = [
    "Account",
    "AccountStatus",
    "Tenant",
    "Membership",
    "MemberRole",
    "Employment",
    "EmploymentType",
    "Invitation",
    "InvitationStatus",
    "PasswordResetToken",
    "TokenPayload",
    "hash_password",
    "verify_password",
    "password_problems",
    "TokenCodec",
    "TokenError",
    "IdentityRepository",
    "DuplicateKeyError",
    "InvitationLedger",
    "InvitationPreview",
    "BootstrapIdentity",
    "IdentityRegistrar",
    "RegistrationRequest",
    "AuthService",
    "LoginResult",
    "MembershipSelector",
    "Profile",
    "first_joined",
    "PasswordResetService",
    "ResetNotifier",
    "LoggingResetNotifier",
]
