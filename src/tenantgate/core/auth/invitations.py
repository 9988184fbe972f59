"""Invitation lifecycle: issue, validate, consume, cancel.

An invitation moves ``pending -> used | expired | canceled``. Expiry is
applied lazily: the first validity check after ``expires_at`` flips a
still-pending row to ``expired``. Consumption is a single conditional write
keyed on the row still being usable, so two concurrent redemptions of a
single-use invitation cannot both succeed.
"""

from datetime import date, datetime, timedelta
from uuid import UUID

import structlog
from pydantic import BaseModel

from tenantgate.core.audit import AuditSink
from tenantgate.core.auth.repository import IdentityRepository
from tenantgate.core.auth.tokens import generate_opaque_token, utcnow
from tenantgate.core.auth.types import (
    EmploymentType,
    Invitation,
    InvitationStatus,
    MemberRole,
    Tenant,
    normalize_email,
)
from tenantgate.core.exceptions import (
    CapacityExceeded,
    InvitationInvalid,
    InvitationNotFound,
    TenantNotFound,
)

logger = structlog.get_logger()

DEFAULT_INVITATION_TTL_DAYS = 7


class InvitationPreview(BaseModel):
    """What an invitee may see before registering."""

    tenant_id: UUID
    tenant_name: str
    email: str
    role: MemberRole
    expires_at: datetime


class InvitationLedger:
    """Owns invitation state transitions and license checks."""

    def __init__(
        self,
        repo: IdentityRepository,
        audit: AuditSink | None = None,
        default_ttl_days: int = DEFAULT_INVITATION_TTL_DAYS,
    ) -> None:
        """Initialize the ledger.

        Args:
            repo: Identity repository.
            audit: Optional audit sink for issue/cancel events.
            default_ttl_days: Lifetime used when ``issue`` gets no ``ttl_days``.
        """
        self._repo = repo
        self._audit = audit
        self._default_ttl_days = default_ttl_days

    async def ensure_capacity(self, tenant: Tenant) -> None:
        """Raise CapacityExceeded if the tenant is at its license limit.

        Args:
            tenant: Tenant to check. ``max_users`` of None means unlimited.
        """
        if tenant.max_users is None:
            return
        current = await self._repo.count_tenant_memberships(tenant.id)
        if current >= tenant.max_users:
            logger.info(
                "tenant_capacity_exceeded",
                tenant_id=str(tenant.id),
                current=current,
                limit=tenant.max_users,
            )
            raise CapacityExceeded(current=current, limit=tenant.max_users)

    async def issue(
        self,
        tenant_id: UUID,
        email: str,
        role: MemberRole,
        employee_no: str,
        employment_type: EmploymentType | None = None,
        hire_date: date | None = None,
        ttl_days: int | None = None,
        max_uses: int = 1,
        created_by: UUID | None = None,
        now: datetime | None = None,
    ) -> Invitation:
        """Create a pending invitation.

        Args:
            tenant_id: Tenant the invitee will join.
            email: Address the invitation is bound to.
            role: Role granted on redemption.
            employee_no: Employee number for the employment record.
            employment_type: Optional employment type.
            hire_date: Optional hire date.
            ttl_days: Days until expiry; defaults to the ledger's setting.
            max_uses: How many redemptions are allowed.
            created_by: Issuing account.
            now: Reference time; defaults to the current UTC time.

        Returns:
            The stored invitation, including its token.

        Raises:
            TenantNotFound: If the tenant does not exist.
            CapacityExceeded: If the tenant is at its license limit.
            ValueError: If ``max_uses`` or ``ttl_days`` is not positive.
        """
        if max_uses < 1:
            raise ValueError("max_uses must be at least 1")
        days = self._default_ttl_days if ttl_days is None else ttl_days
        if days < 1:
            raise ValueError("ttl_days must be at least 1")

        tenant = await self._repo.get_tenant_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFound()

        await self.ensure_capacity(tenant)

        expires_at = (now or utcnow()) + timedelta(days=days)
        invitation = await self._repo.create_invitation(
            tenant_id=tenant_id,
            email=normalize_email(email),
            token=generate_opaque_token(),
            role=role,
            employee_no=employee_no,
            employment_type=employment_type,
            hire_date=hire_date,
            expires_at=expires_at,
            max_uses=max_uses,
            created_by=created_by,
        )

        logger.info(
            "invitation_issued",
            invitation_id=str(invitation.id),
            tenant_id=str(tenant_id),
            role=role.value,
            max_uses=max_uses,
        )
        if self._audit is not None:
            await self._audit.record(
                action="invitation.create",
                target_type="invitation",
                target_id=invitation.id,
                after=_audit_view(invitation),
            )
        return invitation

    async def validate(
        self,
        token: str,
        now: datetime | None = None,
        *,
        lock: bool = False,
    ) -> Invitation:
        """Look up an invitation and require it to be usable.

        A pending invitation found past its expiry is flipped to ``expired``
        before the failure is raised.

        Args:
            token: Opaque invitation token.
            now: Reference time; defaults to the current UTC time.
            lock: Hold the invitation row until the enclosing transaction
                ends. A concurrent locked read waits and then sees the
                outcome of this transaction.

        Returns:
            The usable invitation.

        Raises:
            InvitationNotFound: If no live invitation has this token.
            InvitationInvalid: If the invitation is expired, used up or canceled.
        """
        now = now or utcnow()
        invitation = await self._repo.get_invitation_by_token(token, lock=lock)
        if invitation is None:
            raise InvitationNotFound()

        if invitation.is_usable(now):
            return invitation

        if invitation.status == InvitationStatus.PENDING and invitation.is_past_expiry(now):
            await self._repo.expire_invitation(invitation.id)
            logger.info("invitation_expired", invitation_id=str(invitation.id))

        raise InvitationInvalid()

    async def consume(
        self,
        invitation: Invitation,
        account_id: UUID,
        now: datetime | None = None,
    ) -> Invitation:
        """Record a redemption of ``invitation`` by ``account_id``.

        Args:
            invitation: Invitation previously returned by ``validate``.
            account_id: Account the redemption is attributed to.
            now: Reference time; defaults to the current UTC time.

        Returns:
            The invitation as stored after the write.

        Raises:
            InvitationInvalid: If the invitation stopped being usable since it
                was read (used by a concurrent request, expired or canceled).
        """
        updated = await self._repo.consume_invitation(invitation.id, account_id, now or utcnow())
        if updated is None:
            logger.info("invitation_consume_conflict", invitation_id=str(invitation.id))
            raise InvitationInvalid()

        logger.info(
            "invitation_consumed",
            invitation_id=str(updated.id),
            account_id=str(account_id),
            used_count=updated.used_count,
            status=updated.status.value,
        )
        return updated

    async def cancel(self, invitation_id: UUID, tenant_id: UUID) -> Invitation:
        """Cancel a pending invitation of a tenant.

        Args:
            invitation_id: Invitation to cancel.
            tenant_id: Tenant the caller is acting in.

        Returns:
            The canceled invitation.

        Raises:
            InvitationNotFound: If the invitation does not exist in the tenant.
            InvitationInvalid: If the invitation is no longer pending.
        """
        existing = await self._repo.get_invitation_by_id(invitation_id)
        if existing is None or existing.tenant_id != tenant_id:
            raise InvitationNotFound()

        canceled = await self._repo.cancel_invitation(invitation_id, tenant_id)
        if canceled is None:
            raise InvitationInvalid("Only pending invitations can be canceled")

        logger.info("invitation_canceled", invitation_id=str(invitation_id))
        if self._audit is not None:
            await self._audit.record(
                action="invitation.cancel",
                target_type="invitation",
                target_id=invitation_id,
                before=_audit_view(existing),
                after=_audit_view(canceled),
            )
        return canceled

    async def describe(self, token: str, now: datetime | None = None) -> InvitationPreview:
        """Validate a token and return the invitee-facing preview.

        Raises:
            InvitationNotFound: If the token or its tenant is unknown.
            InvitationInvalid: If the invitation is not usable.
        """
        invitation = await self.validate(token, now=now)
        tenant = await self._repo.get_tenant_by_id(invitation.tenant_id)
        if tenant is None:
            raise InvitationNotFound()
        return InvitationPreview(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            email=invitation.email,
            role=invitation.role,
            expires_at=invitation.expires_at,
        )


def _audit_view(invitation: Invitation) -> dict[str, object]:
    # Token is a credential; never record it.
    return invitation.model_dump(mode="json", exclude={"token"})
