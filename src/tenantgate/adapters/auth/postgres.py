"""PostgreSQL implementation of IdentityRepository."""

from contextlib import AbstractAsyncContextManager
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import asyncpg

from tenantgate.adapters.db.app_db import AppDatabase
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


class PostgresIdentityRepository:
    """PostgreSQL implementation of the identity repository."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open a database transaction shared by all calls inside it."""
        return self._db.transaction()

    def _row_to_account(self, row: dict[str, Any]) -> Account:
        """Convert database row to Account model."""
        return Account(
            id=row["id"],
            email=row["email"],
            password_hash=row.get("password_hash"),
            family_name=row.get("family_name"),
            first_name=row.get("first_name"),
            family_name_kana=row.get("family_name_kana"),
            first_name_kana=row.get("first_name_kana"),
            status=AccountStatus(row.get("status", "active")),
            created_by=row.get("created_by"),
            updated_by=row.get("updated_by"),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
            deleted_at=row.get("deleted_at"),
        )

    def _row_to_tenant(self, row: dict[str, Any]) -> Tenant:
        """Convert database row to Tenant model."""
        return Tenant(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            max_users=row.get("max_users"),
            created_at=row["created_at"],
            deleted_at=row.get("deleted_at"),
        )

    def _row_to_membership(self, row: dict[str, Any]) -> Membership:
        """Convert database row to Membership model."""
        return Membership(
            id=row["id"],
            account_id=row["account_id"],
            tenant_id=row["tenant_id"],
            role=MemberRole(row["role"]),
            joined_at=row["joined_at"],
            created_by=row.get("created_by"),
            updated_by=row.get("updated_by"),
            deleted_at=row.get("deleted_at"),
        )

    def _row_to_employment(self, row: dict[str, Any]) -> Employment:
        """Convert database row to Employment model."""
        return Employment(
            id=row["id"],
            tenant_id=row["tenant_id"],
            account_id=row["account_id"],
            employee_no=row["employee_no"],
            employment_type=EmploymentType(row["employment_type"]),
            hire_date=row["hire_date"],
            created_by=row.get("created_by"),
            updated_by=row.get("updated_by"),
            created_at=row["created_at"],
        )

    def _row_to_invitation(self, row: dict[str, Any]) -> Invitation:
        """Convert database row to Invitation model."""
        employment_type = row.get("employment_type")
        return Invitation(
            id=row["id"],
            tenant_id=row["tenant_id"],
            email=row["email"],
            token=row["token"],
            role=MemberRole(row["role"]),
            employee_no=row["employee_no"],
            employment_type=EmploymentType(employment_type) if employment_type else None,
            hire_date=row.get("hire_date"),
            expires_at=row["expires_at"],
            max_uses=row["max_uses"],
            used_count=row["used_count"],
            status=InvitationStatus(row["status"]),
            used_at=row.get("used_at"),
            used_by=row.get("used_by"),
            created_by=row.get("created_by"),
            created_at=row["created_at"],
            deleted_at=row.get("deleted_at"),
        )

    def _row_to_reset_token(self, row: dict[str, Any]) -> PasswordResetToken:
        """Convert database row to PasswordResetToken model."""
        return PasswordResetToken(
            id=row["id"],
            account_id=row["account_id"],
            token_hash=row["token_hash"],
            expires_at=row["expires_at"],
            used_at=row.get("used_at"),
            created_at=row["created_at"],
        )

    # Account operations
    async def get_account_by_id(self, account_id: UUID) -> Account | None:
        """Get account by ID."""
        row = await self._db.fetch_one(
            "SELECT * FROM accounts WHERE id = $1 AND deleted_at IS NULL",
            account_id,
        )
        return self._row_to_account(row) if row else None

    async def get_account_by_email(self, email: str) -> Account | None:
        """Get account by email address."""
        row = await self._db.fetch_one(
            "SELECT * FROM accounts WHERE email = $1 AND deleted_at IS NULL",
            email,
        )
        return self._row_to_account(row) if row else None

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
        """Create a new account.

        Raises:
            DuplicateKeyError: If a live account already uses the email.
        """
        try:
            row = await self._db.execute_returning(
                """
                INSERT INTO accounts (
                    email, password_hash, family_name, first_name,
                    family_name_kana, first_name_kana, status, created_by, updated_by
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
                RETURNING *
                """,
                email,
                password_hash,
                family_name,
                first_name,
                family_name_kana,
                first_name_kana,
                status.value,
                created_by,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(str(e)) from e
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_account(row)

    async def insert_account_if_absent(
        self,
        email: str,
        placeholder_actor: UUID,
    ) -> Account | None:
        """Insert a password-less account unless the email is taken."""
        row = await self._db.execute_returning(
            """
            INSERT INTO accounts (email, password_hash, status, created_by, updated_by)
            VALUES ($1, NULL, 'active', $2, $2)
            ON CONFLICT (email) WHERE deleted_at IS NULL DO NOTHING
            RETURNING *
            """,
            email,
            placeholder_actor,
        )
        return self._row_to_account(row) if row else None

    async def set_account_actors(self, account_id: UUID, actor_id: UUID) -> Account | None:
        """Overwrite both audit-actor columns."""
        row = await self._db.execute_returning(
            """
            UPDATE accounts SET created_by = $2, updated_by = $2
            WHERE id = $1
            RETURNING *
            """,
            account_id,
            actor_id,
        )
        return self._row_to_account(row) if row else None

    async def update_password(
        self,
        account_id: UUID,
        password_hash: str,
        updated_by: UUID | None = None,
    ) -> Account | None:
        """Replace an account's password hash."""
        row = await self._db.execute_returning(
            """
            UPDATE accounts
            SET password_hash = $2, updated_by = COALESCE($3, updated_by), updated_at = $4
            WHERE id = $1 AND deleted_at IS NULL
            RETURNING *
            """,
            account_id,
            password_hash,
            updated_by,
            datetime.now(UTC),
        )
        return self._row_to_account(row) if row else None

    # Tenant operations
    async def get_tenant_by_id(self, tenant_id: UUID) -> Tenant | None:
        """Get tenant by ID."""
        row = await self._db.fetch_one(
            "SELECT * FROM tenants WHERE id = $1 AND deleted_at IS NULL",
            tenant_id,
        )
        return self._row_to_tenant(row) if row else None

    async def create_tenant(self, code: str, name: str, max_users: int | None = None) -> Tenant:
        """Create a new tenant."""
        row = await self._db.execute_returning(
            """
            INSERT INTO tenants (code, name, max_users)
            VALUES ($1, $2, $3)
            RETURNING *
            """,
            code,
            name,
            max_users,
        )
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_tenant(row)

    # Membership operations
    async def get_membership(self, account_id: UUID, tenant_id: UUID) -> Membership | None:
        """Get an account's membership in a tenant."""
        row = await self._db.fetch_one(
            """
            SELECT * FROM memberships
            WHERE account_id = $1 AND tenant_id = $2 AND deleted_at IS NULL
            """,
            account_id,
            tenant_id,
        )
        return self._row_to_membership(row) if row else None

    async def list_account_memberships(self, account_id: UUID) -> list[Membership]:
        """Get all live memberships of an account in live tenants."""
        rows = await self._db.fetch_all(
            """
            SELECT m.* FROM memberships m
            JOIN tenants t ON t.id = m.tenant_id
            WHERE m.account_id = $1 AND m.deleted_at IS NULL AND t.deleted_at IS NULL
            ORDER BY m.joined_at, m.id
            """,
            account_id,
        )
        return [self._row_to_membership(row) for row in rows]

    async def count_tenant_memberships(self, tenant_id: UUID) -> int:
        """Count live memberships in a tenant."""
        count = await self._db.fetch_value(
            "SELECT COUNT(*) FROM memberships WHERE tenant_id = $1 AND deleted_at IS NULL",
            tenant_id,
        )
        return int(count or 0)

    async def create_membership(
        self,
        account_id: UUID,
        tenant_id: UUID,
        role: MemberRole,
        created_by: UUID | None = None,
    ) -> Membership:
        """Add an account to a tenant with a role.

        Raises:
            DuplicateKeyError: If the account is already a member.
        """
        try:
            row = await self._db.execute_returning(
                """
                INSERT INTO memberships (account_id, tenant_id, role, created_by, updated_by)
                VALUES ($1, $2, $3, $4, $4)
                RETURNING *
                """,
                account_id,
                tenant_id,
                role.value,
                created_by,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(str(e)) from e
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_membership(row)

    # Employment operations
    async def get_employment(self, tenant_id: UUID, employee_no: str) -> Employment | None:
        """Get the employment record for an employee number within a tenant."""
        row = await self._db.fetch_one(
            """
            SELECT * FROM employments
            WHERE tenant_id = $1 AND employee_no = $2 AND deleted_at IS NULL
            """,
            tenant_id,
            employee_no,
        )
        return self._row_to_employment(row) if row else None

    async def create_employment(
        self,
        tenant_id: UUID,
        account_id: UUID,
        employee_no: str,
        employment_type: EmploymentType,
        hire_date: date,
        created_by: UUID | None = None,
    ) -> Employment:
        """Create an employment record.

        Raises:
            DuplicateKeyError: If the employee number is taken in the tenant.
        """
        try:
            row = await self._db.execute_returning(
                """
                INSERT INTO employments (
                    tenant_id, account_id, employee_no, employment_type, hire_date,
                    created_by, updated_by
                )
                VALUES ($1, $2, $3, $4, $5, $6, $6)
                RETURNING *
                """,
                tenant_id,
                account_id,
                employee_no,
                employment_type.value,
                hire_date,
                created_by,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(str(e)) from e
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_employment(row)

    # Invitation operations
    async def get_invitation_by_token(
        self, token: str, *, lock: bool = False
    ) -> Invitation | None:
        """Get invitation by its opaque token, optionally locking the row."""
        query = "SELECT * FROM invitations WHERE token = $1 AND deleted_at IS NULL"
        if lock:
            query += " FOR UPDATE"
        row = await self._db.fetch_one(query, token)
        return self._row_to_invitation(row) if row else None

    async def get_invitation_by_id(self, invitation_id: UUID) -> Invitation | None:
        """Get invitation by ID."""
        row = await self._db.fetch_one(
            "SELECT * FROM invitations WHERE id = $1 AND deleted_at IS NULL",
            invitation_id,
        )
        return self._row_to_invitation(row) if row else None

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
        row = await self._db.execute_returning(
            """
            INSERT INTO invitations (
                tenant_id, email, token, role, employee_no, employment_type,
                hire_date, expires_at, max_uses, created_by
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING *
            """,
            tenant_id,
            email,
            token,
            role.value,
            employee_no,
            employment_type.value if employment_type else None,
            hire_date,
            expires_at,
            max_uses,
            created_by,
        )
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_invitation(row)

    async def expire_invitation(self, invitation_id: UUID) -> Invitation | None:
        """Flip a pending invitation to expired."""
        row = await self._db.execute_returning(
            """
            UPDATE invitations SET status = 'expired'
            WHERE id = $1 AND status = 'pending'
            RETURNING *
            """,
            invitation_id,
        )
        return self._row_to_invitation(row) if row else None

    async def consume_invitation(
        self,
        invitation_id: UUID,
        account_id: UUID,
        now: datetime,
    ) -> Invitation | None:
        """Record one use of an invitation if it is still usable at ``now``.

        The WHERE clause re-evaluates usability against the committed row, so
        a concurrent redemption that commits first makes this update match
        nothing.
        """
        row = await self._db.execute_returning(
            """
            UPDATE invitations SET
                used_count = used_count + 1,
                used_at = COALESCE(used_at, $3),
                used_by = COALESCE(used_by, $2),
                status = CASE WHEN used_count + 1 >= max_uses THEN 'used' ELSE status END
            WHERE id = $1
              AND status = 'pending'
              AND expires_at > $3
              AND used_count < max_uses
              AND deleted_at IS NULL
            RETURNING *
            """,
            invitation_id,
            account_id,
            now,
        )
        return self._row_to_invitation(row) if row else None

    async def cancel_invitation(
        self,
        invitation_id: UUID,
        tenant_id: UUID,
    ) -> Invitation | None:
        """Flip a pending invitation to canceled."""
        row = await self._db.execute_returning(
            """
            UPDATE invitations SET status = 'canceled'
            WHERE id = $1 AND tenant_id = $2 AND status = 'pending' AND deleted_at IS NULL
            RETURNING *
            """,
            invitation_id,
            tenant_id,
        )
        return self._row_to_invitation(row) if row else None

    # Password reset operations
    async def create_reset_token(
        self,
        account_id: UUID,
        token_hash: str,
        expires_at: datetime,
    ) -> PasswordResetToken:
        """Store a hashed password reset token."""
        row = await self._db.execute_returning(
            """
            INSERT INTO password_reset_tokens (account_id, token_hash, expires_at)
            VALUES ($1, $2, $3)
            RETURNING *
            """,
            account_id,
            token_hash,
            expires_at,
        )
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_reset_token(row)

    async def get_reset_token(self, token_hash: str) -> PasswordResetToken | None:
        """Get a reset token by its hash."""
        row = await self._db.fetch_one(
            "SELECT * FROM password_reset_tokens WHERE token_hash = $1",
            token_hash,
        )
        return self._row_to_reset_token(row) if row else None

    async def invalidate_reset_tokens(self, account_id: UUID, now: datetime) -> int:
        """Mark every unused token of an account as used."""
        result = await self._db.execute(
            """
            UPDATE password_reset_tokens SET used_at = $2
            WHERE account_id = $1 AND used_at IS NULL
            """,
            account_id,
            now,
        )
        # Status string looks like "UPDATE 3"
        return int(result.split()[-1]) if result else 0

    async def mark_reset_token_used(self, token_id: UUID, now: datetime) -> bool:
        """Mark a token used if it is still unused."""
        result = await self._db.execute(
            """
            UPDATE password_reset_tokens SET used_at = $2
            WHERE id = $1 AND used_at IS NULL
            """,
            token_id,
            now,
        )
        return result == "UPDATE 1"
