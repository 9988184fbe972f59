"""Auth domain types."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


def normalize_email(email: str) -> str:
    """Return the stored form of an address.

    The domain part is case-insensitive and kept lowercase, the same form
    pydantic's ``EmailStr`` produces, so addresses arriving over HTTP and
    from direct callers compare equal. The local part is kept as given.
    """
    local, sep, domain = email.strip().rpartition("@")
    if not sep:
        return email.strip()
    return f"{local}@{domain.lower()}"


class AccountStatus(str, Enum):
    """Account lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    LOCKED = "locked"


class MemberRole(str, Enum):
    """Tenant membership roles."""

    SYSTEM_ADMIN = "system_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


# Role hierarchy - higher index = more permissions
ROLE_HIERARCHY = [
    MemberRole.EMPLOYEE,
    MemberRole.MANAGER,
    MemberRole.ADMIN,
    MemberRole.SYSTEM_ADMIN,
]


class EmploymentType(str, Enum):
    """Employment contract kinds."""

    FULLTIME = "fulltime"
    PARTTIME = "parttime"
    CONTRACT = "contract"


class InvitationStatus(str, Enum):
    """Invitation lifecycle status."""

    PENDING = "pending"
    USED = "used"
    EXPIRED = "expired"
    CANCELED = "canceled"


class Account(BaseModel):
    """Authenticatable identity."""

    id: UUID
    email: str
    password_hash: str | None = None  # None for the system actor
    family_name: str | None = None
    first_name: str | None = None
    family_name_kana: str | None = None
    first_name_kana: str | None = None
    status: AccountStatus = AccountStatus.ACTIVE
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Whether the account may log in."""
        return self.status == AccountStatus.ACTIVE


class Tenant(BaseModel):
    """Isolated data partition (company)."""

    id: UUID
    code: str
    name: str
    max_users: int | None = None  # None = unlimited
    created_at: datetime
    deleted_at: datetime | None = None


class Membership(BaseModel):
    """Account's role within a tenant."""

    id: UUID
    account_id: UUID
    tenant_id: UUID
    role: MemberRole
    joined_at: datetime
    created_by: UUID | None = None
    updated_by: UUID | None = None
    deleted_at: datetime | None = None


class Employment(BaseModel):
    """Employee record of an account within a tenant."""

    id: UUID
    tenant_id: UUID
    account_id: UUID
    employee_no: str
    employment_type: EmploymentType
    hire_date: date
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime


class Invitation(BaseModel):
    """Single- or limited-use onboarding grant into a tenant."""

    id: UUID
    tenant_id: UUID
    email: str
    token: str
    role: MemberRole
    employee_no: str
    employment_type: EmploymentType | None = None
    hire_date: date | None = None
    expires_at: datetime
    max_uses: int = 1
    used_count: int = 0
    status: InvitationStatus = InvitationStatus.PENDING
    used_at: datetime | None = None
    used_by: UUID | None = None
    created_by: UUID | None = None
    created_at: datetime
    deleted_at: datetime | None = None

    def is_usable(self, now: datetime) -> bool:
        """Check the validity invariant at ``now``."""
        return (
            self.status == InvitationStatus.PENDING
            and now < self.expires_at
            and self.used_count < self.max_uses
            and self.deleted_at is None
        )

    def is_past_expiry(self, now: datetime) -> bool:
        """Whether the expiry timestamp has passed."""
        return now >= self.expires_at


class PasswordResetToken(BaseModel):
    """Stored (hashed) password reset token."""

    id: UUID
    account_id: UUID
    token_hash: str
    expires_at: datetime
    used_at: datetime | None = None
    created_at: datetime


class TokenPayload(BaseModel):
    """JWT token payload claims."""

    sub: str  # account_id
    company_id: str
    role: str
    iat: int  # issued at timestamp
    exp: int  # expiration timestamp
