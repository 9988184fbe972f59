"""Auth API routes for registration, login and password reset."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from tenantgate.core.auth.password import password_problems
from tenantgate.core.auth.password_reset import PasswordResetService
from tenantgate.core.auth.registration import IdentityRegistrar, RegistrationRequest
from tenantgate.core.auth.service import AuthService
from tenantgate.entrypoints.api.deps import get_auth_service, get_registrar, get_reset_service
from tenantgate.entrypoints.api.middleware.jwt_auth import RequireAuth
from tenantgate.entrypoints.api.responses import ok

router = APIRouter(prefix="/auth", tags=["auth"])


def _check_strength(value: str) -> str:
    problems = password_problems(value)
    if problems:
        raise ValueError("; ".join(problems))
    return value


# Request models
class RegisterRequest(BaseModel):
    """Registration request body.

    ``password`` and the names are required only when no account exists
    for the email yet.
    """

    token: str = Field(..., min_length=1)
    email: EmailStr
    password: str | None = None
    family_name: str | None = Field(None, max_length=100)
    first_name: str | None = Field(None, max_length=100)
    family_name_kana: str | None = Field(None, max_length=100)
    first_name_kana: str | None = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str | None) -> str | None:
        """Reject weak passwords."""
        return value if value is None else _check_strength(value)


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    """Password reset request body."""

    email: EmailStr


class PasswordResetConfirm(BaseModel):
    """Password reset confirmation body."""

    token: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        """Reject weak passwords."""
        return _check_strength(value)


@router.post("/register", status_code=201)
async def register(
    request: Request,
    body: RegisterRequest,
    registrar: Annotated[IdentityRegistrar, Depends(get_registrar)],
) -> JSONResponse:
    """Redeem an invitation, creating or extending an account.

    Args:
        request: The current request.
        body: Registration info.
        registrar: Identity registrar.

    Returns:
        Empty success envelope.
    """
    await registrar.register(RegistrationRequest(**body.model_dump()))
    return ok(request, None, status_code=201)


@router.post("/login")
async def login(
    request: Request,
    body: LoginRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> JSONResponse:
    """Authenticate and return a tenant-scoped token.

    Args:
        request: The current request.
        body: Login credentials.
        service: Auth service.

    Returns:
        Token and user profile.
    """
    result = await service.login(email=body.email, password=body.password)
    return ok(request, result.model_dump(mode="json"))


@router.get("/me")
async def get_current_user(
    request: Request,
    auth: RequireAuth,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> JSONResponse:
    """Get the profile of the authenticated account in the token's tenant."""
    profile = await service.current_user(auth.account_id, auth.tenant_id)
    return ok(request, profile.model_dump(mode="json"))


# Password reset endpoints


@router.post("/password-reset/request", status_code=202)
async def request_password_reset(
    request: Request,
    body: PasswordResetRequest,
    service: Annotated[PasswordResetService, Depends(get_reset_service)],
) -> JSONResponse:
    """Request a password reset.

    For security, this always returns success regardless of whether
    the email exists.
    """
    await service.request_reset(body.email)
    return ok(request, None, status_code=202)


@router.post("/password-reset/confirm")
async def confirm_password_reset(
    request: Request,
    body: PasswordResetConfirm,
    service: Annotated[PasswordResetService, Depends(get_reset_service)],
) -> JSONResponse:
    """Set a new password using a reset token."""
    await service.confirm_reset(token=body.token, new_password=body.new_password)
    return ok(request, None)
