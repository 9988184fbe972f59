"""Registration by invitation.

A registration attempt walks ``token validated -> email matched ->
existing or new account -> membership ensured -> employment ensured ->
invitation consumed``. Every write happens inside one repository
transaction; any failure rolls the whole attempt back.
"""

from uuid import UUID

import structlog
from pydantic import BaseModel

from tenantgate.core.audit import AuditSink
from tenantgate.core.auth.bootstrap import BootstrapIdentity
from tenantgate.core.auth.invitations import InvitationLedger
from tenantgate.core.auth.password import hash_password
from tenantgate.core.auth.repository import DuplicateKeyError, IdentityRepository
from tenantgate.core.auth.tokens import utcnow
from tenantgate.core.auth.types import Account, EmploymentType, Invitation, normalize_email
from tenantgate.core.exceptions import (
    EmailMismatch,
    InvitationInvalid,
    InvitationNotFound,
    MissingRequiredField,
    UnexpectedPassword,
)

logger = structlog.get_logger()


class RegistrationRequest(BaseModel):
    """Input of a registration attempt."""

    token: str
    email: str
    password: str | None = None
    family_name: str | None = None
    first_name: str | None = None
    family_name_kana: str | None = None
    first_name_kana: str | None = None


class IdentityRegistrar:
    """Turns a valid invitation into an account, membership and employment."""

    def __init__(
        self,
        repo: IdentityRepository,
        ledger: InvitationLedger,
        bootstrap: BootstrapIdentity,
        audit: AuditSink | None = None,
    ) -> None:
        """Initialize the registrar.

        Args:
            repo: Identity repository.
            ledger: Invitation ledger used to validate and consume.
            bootstrap: Resolver for the system actor.
            audit: Optional audit sink.
        """
        self._repo = repo
        self._ledger = ledger
        self._bootstrap = bootstrap
        self._audit = audit

    async def register(self, request: RegistrationRequest) -> Account:
        """Redeem an invitation.

        Args:
            request: Registration input. ``password`` and names are required
                only when no account exists for the email.

        Returns:
            The new or existing account the invitation was redeemed into.

        Raises:
            InvitationNotFound: Unknown token.
            InvitationInvalid: Invitation expired, used up or canceled, or
                consumed concurrently.
            EmailMismatch: Email differs from the invitation's.
            CapacityExceeded: Tenant is at its license limit.
            UnexpectedPassword: Password supplied for an existing account.
            MissingRequiredField: Password or a name missing for a new account.
        """
        # Checked once outside the transaction so a lazy expiry sticks even
        # though the attempt fails; the locked check inside is authoritative.
        await self._ledger.validate(request.token)
        email = normalize_email(request.email)

        try:
            async with self._repo.transaction():
                invitation = await self._ledger.validate(request.token, lock=True)

                if normalize_email(invitation.email) != email:
                    raise EmailMismatch()

                tenant = await self._repo.get_tenant_by_id(invitation.tenant_id)
                if tenant is None:
                    raise InvitationNotFound()
                await self._ledger.ensure_capacity(tenant)

                system_id = await self._bootstrap.resolve()

                account, created = await self._resolve_account(request, email, system_id)

                membership = await self._repo.get_membership(account.id, tenant.id)
                if membership is None:
                    membership = await self._repo.create_membership(
                        account_id=account.id,
                        tenant_id=tenant.id,
                        role=invitation.role,
                        created_by=system_id,
                    )

                await self._ensure_employment(invitation, account.id, system_id)

                await self._ledger.consume(invitation, account.id)
        except DuplicateKeyError as e:
            # A concurrent redemption inserted the same rows first
            logger.info("registration_conflict", error=str(e))
            raise InvitationInvalid() from e

        logger.info(
            "registration_completed",
            account_id=str(account.id),
            tenant_id=str(tenant.id),
            invitation_id=str(invitation.id),
            new_account=created,
        )
        if self._audit is not None:
            await self._audit.record(
                action="account.register",
                target_type="membership",
                target_id=membership.id,
                after={
                    "account_id": str(account.id),
                    "tenant_id": str(tenant.id),
                    "role": membership.role.value,
                    "new_account": created,
                },
            )
        return account

    async def _resolve_account(
        self,
        request: RegistrationRequest,
        email: str,
        system_id: UUID,
    ) -> tuple[Account, bool]:
        existing = await self._repo.get_account_by_email(email)
        if existing is not None:
            if request.password:
                raise UnexpectedPassword()
            return existing, False

        if not request.password:
            raise MissingRequiredField("password")
        if not request.family_name:
            raise MissingRequiredField("family_name")
        if not request.first_name:
            raise MissingRequiredField("first_name")

        account = await self._repo.create_account(
            email=email,
            password_hash=hash_password(request.password),
            family_name=request.family_name,
            first_name=request.first_name,
            family_name_kana=request.family_name_kana,
            first_name_kana=request.first_name_kana,
            created_by=system_id,
        )
        return account, True

    async def _ensure_employment(
        self,
        invitation: Invitation,
        account_id: UUID,
        system_id: UUID,
    ) -> None:
        existing = await self._repo.get_employment(invitation.tenant_id, invitation.employee_no)
        if existing is not None:
            return
        await self._repo.create_employment(
            tenant_id=invitation.tenant_id,
            account_id=account_id,
            employee_no=invitation.employee_no,
            employment_type=invitation.employment_type or EmploymentType.FULLTIME,
            hire_date=invitation.hire_date or utcnow().date(),
            created_by=system_id,
        )
