"""Tests for registration by invitation."""

import asyncio
from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock, call

import pytest

from tenantgate.adapters.audit.sink import InMemoryAuditSink
from tenantgate.adapters.auth.memory import InMemoryIdentityRepository
from tenantgate.core.auth.invitations import InvitationLedger
from tenantgate.core.auth.password import verify_password
from tenantgate.core.auth.registration import IdentityRegistrar, RegistrationRequest
from tenantgate.core.auth.repository import DuplicateKeyError
from tenantgate.core.auth.types import (
    Account,
    EmploymentType,
    Invitation,
    InvitationStatus,
    MemberRole,
    Tenant,
)
from tenantgate.core.exceptions import (
    CapacityExceeded,
    EmailMismatch,
    InvitationInvalid,
    InvitationNotFound,
    MissingRequiredField,
    UnexpectedPassword,
)
from tests.fixtures.identity import STRONG_PASSWORD, SYSTEM_EMAIL, seed_account, seed_member

EMAIL = "a@x.com"


async def _invite(
    ledger: InvitationLedger,
    tenant: Tenant,
    email: str = EMAIL,
    employee_no: str = "E1",
    **kwargs: object,
) -> Invitation:
    return await ledger.issue(
        tenant_id=tenant.id,
        email=email,
        role=kwargs.pop("role", MemberRole.EMPLOYEE),  # type: ignore[arg-type]
        employee_no=employee_no,
        **kwargs,  # type: ignore[arg-type]
    )


def _new_account_request(
    token: str, email: str = EMAIL, **overrides: object
) -> RegistrationRequest:
    fields: dict[str, object] = {
        "token": token,
        "email": email,
        "password": STRONG_PASSWORD,
        "family_name": "Suzuki",
        "first_name": "Hanako",
    }
    fields.update(overrides)
    return RegistrationRequest(**fields)  # type: ignore[arg-type]


class TestNewAccountPath:
    """Registration of an email with no account yet."""

    async def test_happy_path(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Creates account, membership and employment; invitation becomes used."""
        invitation = await _invite(ledger, tenant)

        account = await registrar.register(_new_account_request(invitation.token))

        assert account.email == EMAIL
        assert account.family_name == "Suzuki"
        assert verify_password(STRONG_PASSWORD, account.password_hash)

        membership = await repo.get_membership(account.id, tenant.id)
        assert membership is not None
        assert membership.role == MemberRole.EMPLOYEE

        employment = await repo.get_employment(tenant.id, "E1")
        assert employment is not None
        assert employment.account_id == account.id

        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.status == InvitationStatus.USED
        assert stored.used_by == account.id

    async def test_authored_by_system_identity(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """New rows name the bootstrap account as their author."""
        invitation = await _invite(ledger, tenant)

        account = await registrar.register(_new_account_request(invitation.token))

        system = await repo.get_account_by_email(SYSTEM_EMAIL)
        assert system is not None
        assert account.created_by == system.id
        membership = await repo.get_membership(account.id, tenant.id)
        assert membership is not None
        assert membership.created_by == system.id

    async def test_employment_defaults(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Missing employment type and hire date default to fulltime and today."""
        invitation = await _invite(ledger, tenant)

        await registrar.register(_new_account_request(invitation.token))

        employment = await repo.get_employment(tenant.id, "E1")
        assert employment is not None
        assert employment.employment_type == EmploymentType.FULLTIME
        assert employment.hire_date == datetime.now(UTC).date()

    async def test_employment_uses_invitation_metadata(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Onboarding metadata from the invitation is applied."""
        invitation = await _invite(
            ledger,
            tenant,
            employment_type=EmploymentType.CONTRACT,
            hire_date=date(2025, 4, 1),
        )

        await registrar.register(_new_account_request(invitation.token))

        employment = await repo.get_employment(tenant.id, "E1")
        assert employment is not None
        assert employment.employment_type == EmploymentType.CONTRACT
        assert employment.hire_date == date(2025, 4, 1)

    @pytest.mark.parametrize("missing", ["password", "family_name", "first_name"])
    async def test_missing_required_field(
        self,
        missing: str,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Password and names are mandatory for a new account; nothing is written."""
        invitation = await _invite(ledger, tenant)

        with pytest.raises(MissingRequiredField) as exc_info:
            await registrar.register(_new_account_request(invitation.token, **{missing: None}))

        assert exc_info.value.field == missing
        assert await repo.get_account_by_email(EMAIL) is None
        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.status == InvitationStatus.PENDING
        assert stored.used_count == 0


class TestExistingAccountPath:
    """Registration of an email that already has an account."""

    async def test_adds_membership_without_touching_password(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Existing accounts gain a membership and keep their hash."""
        other = await repo.create_tenant(code="other", name="Other")
        existing, _ = await seed_member(repo, other, EMAIL)
        invitation = await _invite(ledger, tenant, role=MemberRole.MANAGER)

        account = await registrar.register(
            RegistrationRequest(token=invitation.token, email=EMAIL)
        )

        assert account.id == existing.id
        refreshed = await repo.get_account_by_id(existing.id)
        assert refreshed is not None
        assert refreshed.password_hash == existing.password_hash
        membership = await repo.get_membership(existing.id, tenant.id)
        assert membership is not None
        assert membership.role == MemberRole.MANAGER
        assert await repo.get_employment(tenant.id, "E1") is not None

    async def test_password_rejected(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Supplying a password for an existing account fails."""
        await seed_account(repo, EMAIL)
        invitation = await _invite(ledger, tenant)

        with pytest.raises(UnexpectedPassword):
            await registrar.register(_new_account_request(invitation.token))

        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.used_count == 0

    async def test_reuses_existing_membership_and_employment(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """A retry after a prior redemption does not duplicate rows."""
        account, membership = await seed_member(repo, tenant, EMAIL)
        system_id = account.created_by
        assert system_id is not None
        employment = await repo.create_employment(
            tenant_id=tenant.id,
            account_id=account.id,
            employee_no="E1",
            employment_type=EmploymentType.FULLTIME,
            hire_date=date(2024, 1, 1),
            created_by=system_id,
        )
        invitation = await _invite(ledger, tenant)

        await registrar.register(RegistrationRequest(token=invitation.token, email=EMAIL))

        assert (await repo.get_membership(account.id, tenant.id)) == membership
        assert (await repo.get_employment(tenant.id, "E1")) == employment
        assert len(repo.memberships) == 1
        assert len(repo.employments) == 1


class TestInvitationFailures:
    """Failures tied to the invitation itself."""

    async def test_unknown_token(self, registrar: IdentityRegistrar) -> None:
        """Unknown tokens are not found."""
        with pytest.raises(InvitationNotFound):
            await registrar.register(_new_account_request("nope"))

    async def test_email_mismatch(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """The local part of the registering email must match exactly."""
        invitation = await _invite(ledger, tenant)

        with pytest.raises(EmailMismatch):
            await registrar.register(_new_account_request(invitation.token, email="A@x.com"))

        assert repo.memberships == {}

    async def test_domain_case_ignored(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        tenant: Tenant,
    ) -> None:
        """An invitation bound to a mixed-case domain is redeemable."""
        invitation = await _invite(ledger, tenant, email="a@X.COM")

        account = await registrar.register(
            _new_account_request(invitation.token, email="a@x.Com")
        )

        assert account.email == EMAIL

    async def test_expired_invitation(
        self,
        registrar: IdentityRegistrar,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Expired invitations fail and stay marked expired."""
        invitation = await repo.create_invitation(
            tenant_id=tenant.id,
            email=EMAIL,
            token="stale",
            role=MemberRole.EMPLOYEE,
            employee_no="E1",
            employment_type=None,
            hire_date=None,
            expires_at=datetime.now(UTC) - timedelta(seconds=1),
        )

        with pytest.raises(InvitationInvalid):
            await registrar.register(_new_account_request(invitation.token))

        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.status == InvitationStatus.EXPIRED

    async def test_second_redemption_rejected(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        tenant: Tenant,
    ) -> None:
        """A used single-use invitation cannot be redeemed again."""
        invitation = await _invite(ledger, tenant)
        await registrar.register(_new_account_request(invitation.token))

        with pytest.raises(InvitationInvalid):
            await registrar.register(
                RegistrationRequest(token=invitation.token, email=EMAIL)
            )

    async def test_capacity_rechecked_at_redemption(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        small_tenant: Tenant,
    ) -> None:
        """An invitation issued with room fails once the tenant fills up."""
        invitation = await _invite(ledger, small_tenant)
        await seed_member(repo, small_tenant, "first@tiny.test")

        with pytest.raises(CapacityExceeded):
            await registrar.register(_new_account_request(invitation.token))

        assert await repo.get_account_by_email(EMAIL) is None


class TestConcurrency:
    """Concurrent redemptions of the same invitation."""

    async def test_exactly_one_succeeds(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Two racing registrations: one account, one membership, used_count 1."""
        invitation = await _invite(ledger, tenant)

        results = await asyncio.gather(
            registrar.register(_new_account_request(invitation.token)),
            registrar.register(_new_account_request(invitation.token)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, Account)]
        failures = [r for r in results if isinstance(r, InvitationInvalid)]
        assert len(successes) == 1
        assert len(failures) == 1
        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.used_count == 1
        assert len(repo.memberships) == 1

    async def test_locked_read_inside_transaction(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """The authoritative invitation read asks for a row lock."""
        invitation = await _invite(ledger, tenant)
        lookup = AsyncMock(wraps=repo.get_invitation_by_token)
        repo.get_invitation_by_token = lookup  # type: ignore[method-assign]

        await registrar.register(_new_account_request(invitation.token))

        assert call(invitation.token, lock=True) in lookup.await_args_list

    async def test_account_insert_collision_is_invalid(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """Losing the account insert to a concurrent redemption fails cleanly."""
        invitation = await _invite(ledger, tenant)
        repo.create_account = AsyncMock(  # type: ignore[method-assign]
            side_effect=DuplicateKeyError("accounts_email_live_key")
        )

        with pytest.raises(InvitationInvalid):
            await registrar.register(_new_account_request(invitation.token))

        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.status == InvitationStatus.PENDING
        assert stored.used_count == 0
        assert repo.memberships == {}

    async def test_membership_insert_collision_is_invalid(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        repo: InMemoryIdentityRepository,
        tenant: Tenant,
    ) -> None:
        """An existing account losing the membership insert also fails cleanly."""
        await seed_account(repo, EMAIL)
        invitation = await _invite(ledger, tenant)
        repo.create_membership = AsyncMock(  # type: ignore[method-assign]
            side_effect=DuplicateKeyError("memberships_account_tenant_live_key")
        )

        with pytest.raises(InvitationInvalid):
            await registrar.register(RegistrationRequest(token=invitation.token, email=EMAIL))

        stored = await repo.get_invitation_by_id(invitation.id)
        assert stored is not None
        assert stored.used_count == 0


class TestAudit:
    """Audit side effects."""

    async def test_registration_audited(
        self,
        registrar: IdentityRegistrar,
        ledger: InvitationLedger,
        audit_sink: InMemoryAuditSink,
        tenant: Tenant,
    ) -> None:
        """A completed registration is recorded."""
        invitation = await _invite(ledger, tenant)

        await registrar.register(_new_account_request(invitation.token))

        actions = [r.action for r in audit_sink.records]
        assert "account.register" in actions
