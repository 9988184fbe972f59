"""Identity repository protocol for database operations."""

from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from tenantgate.core.auth.types import (
    Account,
    AccountStatus,
    Employment,
    EmploymentType,
    Invitation,
    MemberRole,
    Membership,
    PasswordResetToken,
    Tenant,
)


class DuplicateKeyError(Exception):
    """Raised when a write would violate a uniqueness rule."""

    pass


@runtime_checkable
class IdentityRepository(Protocol):
    """Protocol for identity database operations.

    Implementations provide actual storage (PostgreSQL, in-memory). Every
    lookup ignores soft-deleted rows. Methods documented as conditional
    return None when their guard did not match instead of raising.
    """

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open an atomic unit of work.

        Every repository call made inside the block commits or rolls back
        together. Nested blocks join the outer one.
        """
        ...

    # Account operations
    async def get_account_by_id(self, account_id: UUID) -> Account | None:
        """Get account by ID."""
        ...

    async def get_account_by_email(self, email: str) -> Account | None:
        """Get account by email address (exact match)."""
        ...

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
        """Create a new account authored by ``created_by``."""
        ...

    async def insert_account_if_absent(
        self,
        email: str,
        placeholder_actor: UUID,
    ) -> Account | None:
        """Insert a password-less account unless the email is taken.

        Both audit-actor columns are set to ``placeholder_actor``.

        Returns:
            The new account, or None if another row already holds the email.
        """
        ...

    async def set_account_actors(self, account_id: UUID, actor_id: UUID) -> Account | None:
        """Overwrite ``created_by`` and ``updated_by`` of an account."""
        ...

    async def update_password(
        self,
        account_id: UUID,
        password_hash: str,
        updated_by: UUID | None = None,
    ) -> Account | None:
        """Replace an account's password hash."""
        ...

    # Tenant operations
    async def get_tenant_by_id(self, tenant_id: UUID) -> Tenant | None:
        """Get tenant by ID."""
        ...

    async def create_tenant(self, code: str, name: str, max_users: int | None = None) -> Tenant:
        """Create a new tenant."""
        ...

    # Membership operations
    async def get_membership(self, account_id: UUID, tenant_id: UUID) -> Membership | None:
        """Get an account's membership in a tenant."""
        ...

    async def list_account_memberships(self, account_id: UUID) -> list[Membership]:
        """Get all memberships of an account, ordered by join time then id."""
        ...

    async def count_tenant_memberships(self, tenant_id: UUID) -> int:
        """Count live memberships in a tenant."""
        ...

    async def create_membership(
        self,
        account_id: UUID,
        tenant_id: UUID,
        role: MemberRole,
        created_by: UUID | None = None,
    ) -> Membership:
        """Add an account to a tenant with a role."""
        ...

    # Employment operations
    async def get_employment(self, tenant_id: UUID, employee_no: str) -> Employment | None:
        """Get the employment record for an employee number within a tenant."""
        ...

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
        ...

    # Invitation operations
    async def get_invitation_by_token(
        self, token: str, *, lock: bool = False
    ) -> Invitation | None:
        """Get invitation by its opaque token.

        With ``lock`` the row stays locked until the enclosing transaction
        ends, so concurrent redemptions of one invitation run one at a time.
        """
        ...

    async def get_invitation_by_id(self, invitation_id: UUID) -> Invitation | None:
        """Get invitation by ID."""
        ...

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
        ...

    async def expire_invitation(self, invitation_id: UUID) -> Invitation | None:
        """Flip a pending invitation to expired. Conditional on status pending."""
        ...

    async def consume_invitation(
        self,
        invitation_id: UUID,
        account_id: UUID,
        now: datetime,
    ) -> Invitation | None:
        """Record one use of an invitation.

        Conditional on the invitation still being usable at ``now``. On
        success ``used_count`` is incremented, ``used_at``/``used_by`` are
        set if unset, and status becomes ``used`` once the count reaches
        ``max_uses``.
        """
        ...

    async def cancel_invitation(
        self,
        invitation_id: UUID,
        tenant_id: UUID,
    ) -> Invitation | None:
        """Flip a pending invitation to canceled. Conditional on status pending."""
        ...

    # Password reset operations
    async def create_reset_token(
        self,
        account_id: UUID,
        token_hash: str,
        expires_at: datetime,
    ) -> PasswordResetToken:
        """Store a hashed password reset token."""
        ...

    async def get_reset_token(self, token_hash: str) -> PasswordResetToken | None:
        """Get a reset token by its hash."""
        ...

    async def invalidate_reset_tokens(self, account_id: UUID, now: datetime) -> int:
        """Mark every unused token of an account as used. Returns the count."""
        ...

    async def mark_reset_token_used(self, token_id: UUID, now: datetime) -> bool:
        """Mark a token used. Conditional on it being unused."""
        ...
