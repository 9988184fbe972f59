"""Invitation API routes."""

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from tenantgate.core.auth.invitations import InvitationLedger
from tenantgate.core.auth.types import (
    EmploymentType,
    Invitation,
    InvitationStatus,
    MemberRole,
)
from tenantgate.core.context import require_tenant
from tenantgate.entrypoints.api.deps import get_ledger
from tenantgate.entrypoints.api.middleware.jwt_auth import RequireAdmin
from tenantgate.entrypoints.api.responses import ok

router = APIRouter(prefix="/invitations", tags=["invitations"])


class CreateInvitationRequest(BaseModel):
    """Invitation issue request body."""

    email: EmailStr
    role: MemberRole = MemberRole.EMPLOYEE
    employee_no: str = Field(..., min_length=1, max_length=50)
    employment_type: EmploymentType | None = None
    hire_date: date | None = None
    ttl_days: int | None = Field(None, ge=1, le=90)
    max_uses: int = Field(1, ge=1, le=100)


class InvitationResponse(BaseModel):
    """Invitation as shown to the issuing admin."""

    id: UUID
    tenant_id: UUID
    email: str
    role: MemberRole
    employee_no: str
    employment_type: EmploymentType | None
    hire_date: date | None
    expires_at: datetime
    max_uses: int
    used_count: int
    status: InvitationStatus
    token: str | None = None

    @classmethod
    def from_invitation(
        cls,
        invitation: Invitation,
        include_token: bool = False,
    ) -> "InvitationResponse":
        """Build the response, exposing the token only when asked."""
        return cls(
            id=invitation.id,
            tenant_id=invitation.tenant_id,
            email=invitation.email,
            role=invitation.role,
            employee_no=invitation.employee_no,
            employment_type=invitation.employment_type,
            hire_date=invitation.hire_date,
            expires_at=invitation.expires_at,
            max_uses=invitation.max_uses,
            used_count=invitation.used_count,
            status=invitation.status,
            token=invitation.token if include_token else None,
        )


@router.post("", status_code=201)
async def create_invitation(
    request: Request,
    body: CreateInvitationRequest,
    auth: RequireAdmin,
    ledger: Annotated[InvitationLedger, Depends(get_ledger)],
) -> JSONResponse:
    """Issue an invitation into the caller's tenant.

    The token is returned only here, for out-of-band delivery to the invitee.
    """
    invitation = await ledger.issue(
        tenant_id=require_tenant(),
        email=body.email,
        role=body.role,
        employee_no=body.employee_no,
        employment_type=body.employment_type,
        hire_date=body.hire_date,
        ttl_days=body.ttl_days,
        max_uses=body.max_uses,
        created_by=auth.account_id,
    )
    response = InvitationResponse.from_invitation(invitation, include_token=True)
    return ok(request, response.model_dump(mode="json"), status_code=201)


@router.get("/{token}")
async def preview_invitation(
    request: Request,
    token: str,
    ledger: Annotated[InvitationLedger, Depends(get_ledger)],
) -> JSONResponse:
    """Show an invitee which company and role the invitation grants."""
    preview = await ledger.describe(token)
    return ok(request, preview.model_dump(mode="json"))


@router.post("/{invitation_id}/cancel")
async def cancel_invitation(
    request: Request,
    invitation_id: UUID,
    auth: RequireAdmin,
    ledger: Annotated[InvitationLedger, Depends(get_ledger)],
) -> JSONResponse:
    """Cancel a pending invitation of the caller's tenant."""
    invitation = await ledger.cancel(invitation_id, require_tenant())
    return ok(request, InvitationResponse.from_invitation(invitation).model_dump(mode="json"))
