"""Session issuance: login and current-user lookup."""

from collections.abc import Callable, Sequence
from uuid import UUID

import structlog
from pydantic import BaseModel

from tenantgate.core.audit import AuditSink
from tenantgate.core.auth.jwt import TokenCodec
from tenantgate.core.auth.password import verify_password
from tenantgate.core.auth.repository import IdentityRepository
from tenantgate.core.auth.types import Account, MemberRole, Membership, normalize_email
from tenantgate.core.exceptions import (
    AccountDisabled,
    AccountNotFound,
    BadCredentials,
    NoTenant,
)

logger = structlog.get_logger()

# Picks the tenant a login is scoped to when an account has several.
MembershipSelector = Callable[[Sequence[Membership]], Membership]


def first_joined(memberships: Sequence[Membership]) -> Membership:
    """Pick the earliest-joined membership, ties broken by id."""
    return min(memberships, key=lambda m: (m.joined_at, str(m.id)))


class Profile(BaseModel):
    """Public view of an account within one tenant."""

    id: UUID
    email: str
    family_name: str | None = None
    first_name: str | None = None
    family_name_kana: str | None = None
    first_name_kana: str | None = None
    tenant_id: UUID
    role: MemberRole

    @classmethod
    def build(cls, account: Account, membership: Membership) -> "Profile":
        """Assemble a profile from an account and one of its memberships."""
        return cls(
            id=account.id,
            email=account.email,
            family_name=account.family_name,
            first_name=account.first_name,
            family_name_kana=account.family_name_kana,
            first_name_kana=account.first_name_kana,
            tenant_id=membership.tenant_id,
            role=membership.role,
        )


class LoginResult(BaseModel):
    """Token plus the profile it was minted for."""

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: Profile


class AuthService:
    """Service for login and session-bound lookups."""

    def __init__(
        self,
        repo: IdentityRepository,
        codec: TokenCodec,
        selector: MembershipSelector = first_joined,
        audit: AuditSink | None = None,
    ) -> None:
        """Initialize with repository and token codec.

        Args:
            repo: Identity repository.
            codec: Codec used to mint session tokens.
            selector: Strategy choosing the tenant when several are available.
            audit: Optional audit sink.
        """
        self._repo = repo
        self._codec = codec
        self._selector = selector
        self._audit = audit

    async def login(self, email: str, password: str) -> LoginResult:
        """Authenticate an account and mint a tenant-scoped token.

        Args:
            email: Account email address.
            password: Plain text password.

        Returns:
            Token and public profile.

        Raises:
            BadCredentials: Unknown email, wrong password, or no password set.
            AccountDisabled: Account status is not active.
            NoTenant: Account has no membership.
        """
        account = await self._repo.get_account_by_email(normalize_email(email))
        if account is None:
            logger.info("login_failed", reason="unknown_email")
            raise BadCredentials()

        if not verify_password(password, account.password_hash):
            logger.info("login_failed", reason="bad_password", account_id=str(account.id))
            raise BadCredentials()

        if not account.is_active:
            logger.info("login_rejected_disabled", account_id=str(account.id))
            raise AccountDisabled()

        memberships = await self._repo.list_account_memberships(account.id)
        if not memberships:
            logger.info("login_rejected_no_tenant", account_id=str(account.id))
            raise NoTenant()

        membership = self._selector(memberships)

        token = self._codec.issue(
            account_id=account.id,
            tenant_id=membership.tenant_id,
            role=membership.role.value,
        )

        logger.info(
            "login_succeeded",
            account_id=str(account.id),
            tenant_id=str(membership.tenant_id),
            role=membership.role.value,
        )
        if self._audit is not None:
            await self._audit.record(
                action="account.login",
                target_type="account",
                target_id=account.id,
            )

        return LoginResult(
            token=token,
            expires_in=int(self._codec.ttl.total_seconds()),
            user=Profile.build(account, membership),
        )

    async def current_user(self, account_id: UUID, tenant_id: UUID) -> Profile:
        """Return the profile of an authenticated account in a tenant.

        Args:
            account_id: Account from the verified token.
            tenant_id: Tenant from the verified token.

        Raises:
            AccountNotFound: Account no longer exists.
            NoTenant: Account is no longer a member of the tenant.
        """
        account = await self._repo.get_account_by_id(account_id)
        if account is None:
            raise AccountNotFound()

        membership = await self._repo.get_membership(account_id, tenant_id)
        if membership is None:
            raise NoTenant("Account is not a member of this company")

        return Profile.build(account, membership)
