"""In-memory implementation of IdentityRepository.

Used by the test suite and by local runs with ``USE_MEMORY_STORE=true``.
Transactions are serialized with an ``asyncio.Lock`` and roll back by
restoring a snapshot of every table, so the conditional writes behave like
their PostgreSQL counterparts under concurrent tasks.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID, uuid4

from tenantgate.core.auth.repository import DuplicateKeyError
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
)


_TABLES = ("accounts", "tenants", "memberships", "employments", "invitations", "reset_tokens")


class InMemoryIdentityRepository:
    """Dict-backed identity repository with transactional semantics."""

    def __init__(self) -> None:
        """Initialize empty tables."""
        self.accounts: dict[UUID, Account] = {}
        self.tenants: dict[UUID, Tenant] = {}
        self.memberships: dict[UUID, Membership] = {}
        self.employments: dict[UUID, Employment] = {}
        self.invitations: dict[UUID, Invitation] = {}
        self.reset_tokens: dict[UUID, PasswordResetToken] = {}
        self._lock = asyncio.Lock()
        self._in_tx: ContextVar[bool] = ContextVar(f"memory_repo_tx_{id(self)}", default=False)

    def _snapshot(self) -> dict[str, dict[UUID, Any]]:
        # Models are replaced, never mutated, so shallow copies suffice.
        return {name: dict(getattr(self, name)) for name in _TABLES}

    def _restore(self, snapshot: dict[str, dict[UUID, Any]]) -> None:
        for name, rows in snapshot.items():
            setattr(self, name, rows)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Serialize the enclosed calls and undo them if the block raises."""
        if self._in_tx.get():
            # Savepoint
            snapshot = self._snapshot()
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                raise
            return

        async with self._lock:
            snapshot = self._snapshot()
            token = self._in_tx.set(True)
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._in_tx.reset(token)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    # Account operations
    async def get_account_by_id(self, account_id: UUID) -> Account | None:
        """Get account by ID."""
        async with self.transaction():
            account = self.accounts.get(account_id)
            return account if account and account.deleted_at is None else None

    async def get_account_by_email(self, email: str) -> Account | None:
        """Get account by email address."""
        async with self.transaction():
            return self._live_account_by_email(email)

    def _live_account_by_email(self, email: str) -> Account | None:
        for account in self.accounts.values():
            if account.email == email and account.deleted_at is None:
                return account
        return None

    async def create_account(
        self,
        email: str,
        password_hash: str | None,
        family_name: str | None = None,
        first_name: str | None = None,
        family_name_kana: str | None = None,
        first_name_kana: str | None = None,
        status: AccountStatus = AccountStatus.ACTIVE,
        *,
        created_by: UUID,
    ) -> Account:
        """Create a new account."""
        async with self.transaction():
            if self._live_account_by_email(email) is not None:
                raise DuplicateKeyError(f"accounts.email already exists: {email}")
            account = Account(
                id=uuid4(),
                email=email,
                password_hash=password_hash,
                family_name=family_name,
                first_name=first_name,
                family_name_kana=family_name_kana,
                first_name_kana=first_name_kana,
                status=status,
                created_by=created_by,
                updated_by=created_by,
                created_at=self._now(),
            )
            self.accounts[account.id] = account
            return account

    async def insert_account_if_absent(
        self,
        email: str,
        placeholder_actor: UUID,
    ) -> Account | None:
        """Insert a password-less account unless the email is taken."""
        async with self.transaction():
            if self._live_account_by_email(email) is not None:
                return None
            account = Account(
                id=uuid4(),
                email=email,
                password_hash=None,
                created_by=placeholder_actor,
                updated_by=placeholder_actor,
                created_at=self._now(),
            )
            self.accounts[account.id] = account
            return account

    async def set_account_actors(self, account_id: UUID, actor_id: UUID) -> Account | None:
        """Overwrite both audit-actor columns."""
        async with self.transaction():
            account = self.accounts.get(account_id)
            if account is None:
                return None
            updated = account.model_copy(update={"created_by": actor_id, "updated_by": actor_id})
            self.accounts[account_id] = updated
            return updated

    async def update_password(
        self,
        account_id: UUID,
        password_hash: str,
        updated_by: UUID | None = None,
    ) -> Account | None:
        """Replace an account's password hash."""
        async with self.transaction():
            account = self.accounts.get(account_id)
            if account is None or account.deleted_at is not None:
                return None
            updated = account.model_copy(
                update={
                    "password_hash": password_hash,
                    "updated_by": updated_by or account.updated_by,
                    "updated_at": self._now(),
                }
            )
            self.accounts[account_id] = updated
            return updated

    # Tenant operations
    async def get_tenant_by_id(self, tenant_id: UUID) -> Tenant | None:
        """Get tenant by ID."""
        async with self.transaction():
            tenant = self.tenants.get(tenant_id)
            return tenant if tenant and tenant.deleted_at is None else None

    async def create_tenant(self, code: str, name: str, max_users: int | None = None) -> Tenant:
        """Create a new tenant."""
        async with self.transaction():
            if any(t.code == code for t in self.tenants.values()):
                raise DuplicateKeyError(f"tenants.code already exists: {code}")
            tenant = Tenant(
                id=uuid4(),
                code=code,
                name=name,
                max_users=max_users,
                created_at=self._now(),
            )
            self.tenants[tenant.id] = tenant
            return tenant

    # Membership operations
    def _live_membership(self, account_id: UUID, tenant_id: UUID) -> Membership | None:
        for membership in self.memberships.values():
            if (
                membership.account_id == account_id
                and membership.tenant_id == tenant_id
                and membership.deleted_at is None
            ):
                return membership
        return None

    async def get_membership(self, account_id: UUID, tenant_id: UUID) -> Membership | None:
        """Get an account's membership in a tenant."""
        async with self.transaction():
            return self._live_membership(account_id, tenant_id)

    async def list_account_memberships(self, account_id: UUID) -> list[Membership]:
        """Get all live memberships of an account in live tenants."""
        async with self.transaction():
            found = [
                m
                for m in self.memberships.values()
                if m.account_id == account_id
                and m.deleted_at is None
                and m.tenant_id in self.tenants
                and self.tenants[m.tenant_id].deleted_at is None
            ]
            return sorted(found, key=lambda m: (m.joined_at, str(m.id)))

    async def count_tenant_memberships(self, tenant_id: UUID) -> int:
        """Count live memberships in a tenant."""
        async with self.transaction():
            return sum(
                1
                for m in self.memberships.values()
                if m.tenant_id == tenant_id and m.deleted_at is None
            )

    async def create_membership(
        self,
        account_id: UUID,
        tenant_id: UUID,
        role: MemberRole,
        created_by: UUID | None = None,
    ) -> Membership:
        """Add an account to a tenant with a role."""
        async with self.transaction():
            if self._live_membership(account_id, tenant_id) is not None:
                raise DuplicateKeyError("memberships.(account_id, tenant_id) already exists")
            membership = Membership(
                id=uuid4(),
                account_id=account_id,
                tenant_id=tenant_id,
                role=role,
                joined_at=self._now(),
                created_by=created_by,
                updated_by=created_by,
            )
            self.memberships[membership.id] = membership
            return membership

    # Employment operations
    def _live_employment(self, tenant_id: UUID, employee_no: str) -> Employment | None:
        for employment in self.employments.values():
            if employment.tenant_id == tenant_id and employment.employee_no == employee_no:
                return employment
        return None

    async def get_employment(self, tenant_id: UUID, employee_no: str) -> Employment | None:
        """Get the employment record for an employee number within a tenant."""
        async with self.transaction():
            return self._live_employment(tenant_id, employee_no)

    async def create_employment(
        self,
        tenant_id: UUID,
        account_id: UUID,
        employee_no: str,
        employment_type: EmploymentType,
        hire_date: date,
        created_by: UUID | None = None,
    ) -> Employment:
        """Create an employment record."""
        async with self.transaction():
            if self._live_employment(tenant_id, employee_no) is not None:
                raise DuplicateKeyError("employments.(tenant_id, employee_no) already exists")
            employment = Employment(
                id=uuid4(),
                tenant_id=tenant_id,
                account_id=account_id,
                employee_no=employee_no,
                employment_type=employment_type,
                hire_date=hire_date,
                created_by=created_by,
                updated_by=created_by,
                created_at=self._now(),
            )
            self.employments[employment.id] = employment
            return employment

    # Invitation operations
    async def get_invitation_by_token(
        self, token: str, *, lock: bool = False
    ) -> Invitation | None:
        """Get invitation by its opaque token.

        ``lock`` needs no extra work here: transactions already run one at
        a time.
        """
        async with self.transaction():
            for invitation in self.invitations.values():
                if invitation.token == token and invitation.deleted_at is None:
                    return invitation
            return None

    async def get_invitation_by_id(self, invitation_id: UUID) -> Invitation | None:
        """Get invitation by ID."""
        async with self.transaction():
            invitation = self.invitations.get(invitation_id)
            return invitation if invitation and invitation.deleted_at is None else None

    async def create_invitation(
        self,
        tenant_id: UUID,
        email: str,
        token: str,
        role: MemberRole,
        employee_no: str,
        employment_type: EmploymentType | None,
        hire_date: date | None,
        expires_at: datetime,
        max_uses: int = 1,
        created_by: UUID | None = None,
    ) -> Invitation:
        """Create a pending invitation."""
        async with self.transaction():
            if any(i.token == token for i in self.invitations.values()):
                raise DuplicateKeyError("invitations.token already exists")
            invitation = Invitation(
                id=uuid4(),
                tenant_id=tenant_id,
                email=email,
                token=token,
                role=role,
                employee_no=employee_no,
                employment_type=employment_type,
                hire_date=hire_date,
                expires_at=expires_at,
                max_uses=max_uses,
                created_by=created_by,
                created_at=self._now(),
            )
            self.invitations[invitation.id] = invitation
            return invitation

    async def expire_invitation(self, invitation_id: UUID) -> Invitation | None:
        """Flip a pending invitation to expired."""
        async with self.transaction():
            invitation = self.invitations.get(invitation_id)
            if invitation is None or invitation.status != InvitationStatus.PENDING:
                return None
            updated = invitation.model_copy(update={"status": InvitationStatus.EXPIRED})
            self.invitations[invitation_id] = updated
            return updated

    async def consume_invitation(
        self,
        invitation_id: UUID,
        account_id: UUID,
        now: datetime,
    ) -> Invitation | None:
        """Record one use of an invitation if it is still usable at ``now``."""
        async with self.transaction():
            invitation = self.invitations.get(invitation_id)
            if invitation is None or not invitation.is_usable(now):
                return None
            used_count = invitation.used_count + 1
            updated = invitation.model_copy(
                update={
                    "used_count": used_count,
                    "used_at": invitation.used_at or now,
                    "used_by": invitation.used_by or account_id,
                    "status": (
                        InvitationStatus.USED
                        if used_count >= invitation.max_uses
                        else invitation.status
                    ),
                }
            )
            self.invitations[invitation_id] = updated
            return updated

    async def cancel_invitation(
        self,
        invitation_id: UUID,
        tenant_id: UUID,
    ) -> Invitation | None:
        """Flip a pending invitation to canceled."""
        async with self.transaction():
            invitation = self.invitations.get(invitation_id)
            if (
                invitation is None
                or invitation.tenant_id != tenant_id
                or invitation.status != InvitationStatus.PENDING
                or invitation.deleted_at is not None
            ):
                return None
            updated = invitation.model_copy(update={"status": InvitationStatus.CANCELED})
            self.invitations[invitation_id] = updated
            return updated

    # Password reset operations
    async def create_reset_token(
        self,
        account_id: UUID,
        token_hash: str,
        expires_at: datetime,
    ) -> PasswordResetToken:
        """Store a hashed password reset token."""
        async with self.transaction():
            record = PasswordResetToken(
                id=uuid4(),
                account_id=account_id,
                token_hash=token_hash,
                expires_at=expires_at,
                created_at=self._now(),
            )
            self.reset_tokens[record.id] = record
            return record

    async def get_reset_token(self, token_hash: str) -> PasswordResetToken | None:
        """Get a reset token by its hash."""
        async with self.transaction():
            for record in self.reset_tokens.values():
                if record.token_hash == token_hash:
                    return record
            return None

    async def invalidate_reset_tokens(self, account_id: UUID, now: datetime) -> int:
        """Mark every unused token of an account as used."""
        async with self.transaction():
            count = 0
            for token_id, record in list(self.reset_tokens.items()):
                if record.account_id == account_id and record.used_at is None:
                    self.reset_tokens[token_id] = record.model_copy(update={"used_at": now})
                    count += 1
            return count

    async def mark_reset_token_used(self, token_id: UUID, now: datetime) -> bool:
        """Mark a token used if it is still unused."""
        async with self.transaction():
            record = self.reset_tokens.get(token_id)
            if record is None or record.used_at is not None:
                return False
            self.reset_tokens[token_id] = record.model_copy(update={"used_at": now})
            return True
