"""Identity fixtures backed by the in-memory repository."""

from __future__ import annotations

from uuid import UUID

import pytest

from tenantgate.adapters.audit.sink import InMemoryAuditSink
from tenantgate.adapters.auth.memory import InMemoryIdentityRepository
from tenantgate.core.auth.bootstrap import BootstrapIdentity
from tenantgate.core.auth.invitations import InvitationLedger
from tenantgate.core.auth.jwt import TokenCodec
from tenantgate.core.auth.password import hash_password
from tenantgate.core.auth.password_reset import PasswordResetService
from tenantgate.core.auth.registration import IdentityRegistrar
from tenantgate.core.auth.service import AuthService
from tenantgate.core.auth.types import Account, MemberRole, Membership, Tenant

TEST_SECRET = "test-signing-secret-with-at-least-32-bytes"  # pragma: allowlist secret
STRONG_PASSWORD = "P@ssw0rd1234!"  # pragma: allowlist secret
SYSTEM_EMAIL = "system-bot@tenantgate.test"

# bcrypt is slow by design; hash once for every seeded account.
_STRONG_PASSWORD_HASH = hash_password(STRONG_PASSWORD)


class RecordingNotifier:
    """Reset notifier that keeps the tokens it was asked to deliver."""

    def __init__(self, succeed: bool = True) -> None:
        self.sent: list[tuple[UUID, str, str]] = []
        self._succeed = succeed

    async def send_reset(self, account_id: UUID, email: str, token: str) -> bool:
        self.sent.append((account_id, email, token))
        return self._succeed


async def seed_account(
    repo: InMemoryIdentityRepository,
    email: str,
    password_hash: str | None = _STRONG_PASSWORD_HASH,
    **fields: object,
) -> Account:
    """Create an account authored by the bootstrap identity."""
    system_id = await BootstrapIdentity(repo, SYSTEM_EMAIL).resolve()
    return await repo.create_account(
        email=email,
        password_hash=password_hash,
        family_name=fields.pop("family_name", "Yamada"),  # type: ignore[arg-type]
        first_name=fields.pop("first_name", "Taro"),  # type: ignore[arg-type]
        created_by=system_id,
        **fields,  # type: ignore[arg-type]
    )


async def seed_member(
    repo: InMemoryIdentityRepository,
    tenant: Tenant,
    email: str,
    role: MemberRole = MemberRole.EMPLOYEE,
) -> tuple[Account, Membership]:
    """Create an account that belongs to ``tenant``."""
    account = await seed_account(repo, email)
    membership = await repo.create_membership(account.id, tenant.id, role)
    return account, membership


@pytest.fixture
def repo() -> InMemoryIdentityRepository:
    """Empty in-memory identity repository."""
    return InMemoryIdentityRepository()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    """Audit sink that keeps records in memory."""
    return InMemoryAuditSink()


@pytest.fixture
def codec() -> TokenCodec:
    """Token codec with a test secret."""
    return TokenCodec(secret=TEST_SECRET)


@pytest.fixture
def ledger(repo: InMemoryIdentityRepository, audit_sink: InMemoryAuditSink) -> InvitationLedger:
    """Invitation ledger over the in-memory repository."""
    return InvitationLedger(repo, audit=audit_sink)


@pytest.fixture
def bootstrap(repo: InMemoryIdentityRepository) -> BootstrapIdentity:
    """Bootstrap identity resolver."""
    return BootstrapIdentity(repo, SYSTEM_EMAIL)


@pytest.fixture
def registrar(
    repo: InMemoryIdentityRepository,
    ledger: InvitationLedger,
    bootstrap: BootstrapIdentity,
    audit_sink: InMemoryAuditSink,
) -> IdentityRegistrar:
    """Registrar wired to the in-memory repository."""
    return IdentityRegistrar(repo, ledger, bootstrap, audit=audit_sink)


@pytest.fixture
def auth_service(
    repo: InMemoryIdentityRepository,
    codec: TokenCodec,
    audit_sink: InMemoryAuditSink,
) -> AuthService:
    """Auth service with the default membership selector."""
    return AuthService(repo, codec, audit=audit_sink)


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier that records issued reset tokens."""
    return RecordingNotifier()


@pytest.fixture
def reset_service(
    repo: InMemoryIdentityRepository,
    notifier: RecordingNotifier,
) -> PasswordResetService:
    """Password reset service."""
    return PasswordResetService(repo, notifier=notifier)


@pytest.fixture
async def tenant(repo: InMemoryIdentityRepository) -> Tenant:
    """Tenant without a license limit."""
    return await repo.create_tenant(code="acme", name="Acme Corp")


@pytest.fixture
async def small_tenant(repo: InMemoryIdentityRepository) -> Tenant:
    """Tenant licensed for a single member."""
    return await repo.create_tenant(code="tiny", name="Tiny KK", max_users=1)
