"""Request-scoped tenant context.

The active tenant (company) for a request lives in a ``ContextVar`` rather
than a thread-local, so every asyncio task and every worker thread sees its
own value. The request gate enters ``request_scope`` once per inbound call;
the token-based reset in its ``finally`` block restores the previous state on
every exit path, so nothing can leak into the next request served by the
same worker.

Code that prefers explicit passing can take a ``RequestContext`` from
``current_request()`` and hand it down instead of reading ambient state.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from uuid import UUID

from tenantgate.core.exceptions import TenantContextMissing


@dataclass(frozen=True)
class RequestContext:
    """Identity data for one inbound request."""

    request_id: str
    tenant_id: UUID | None = None
    account_id: UUID | None = None
    role: str | None = None

    @property
    def is_authenticated(self) -> bool:
        """Whether a verified token populated this context."""
        return self.account_id is not None


_current_tenant: ContextVar[UUID | None] = ContextVar("current_tenant", default=None)
_current_account: ContextVar[UUID | None] = ContextVar("current_account", default=None)
_current_request: ContextVar[RequestContext | None] = ContextVar("current_request", default=None)


def set_tenant(tenant_id: UUID) -> None:
    """Set the active tenant for the current execution context."""
    _current_tenant.set(tenant_id)


def get_tenant() -> UUID | None:
    """Return the active tenant, or None outside an authenticated request."""
    return _current_tenant.get()


def require_tenant() -> UUID:
    """Return the active tenant or raise TenantContextMissing."""
    tenant_id = _current_tenant.get()
    if tenant_id is None:
        raise TenantContextMissing()
    return tenant_id


def clear_tenant() -> None:
    """Clear the active tenant and account."""
    _current_tenant.set(None)
    _current_account.set(None)


def get_current_account_id() -> UUID | None:
    """Return the authenticated account id for the current request."""
    return _current_account.get()


def current_request() -> RequestContext | None:
    """Return the full request context, if a request scope is active."""
    return _current_request.get()


@contextmanager
def request_scope(
    request_id: str,
    tenant_id: UUID | None = None,
    account_id: UUID | None = None,
    role: str | None = None,
) -> Iterator[RequestContext]:
    """Bind identity data for the duration of one request.

    Previous values are restored on exit, even when the body raises.

    Usage:
        with request_scope(request_id, tenant_id=tid, account_id=aid, role="admin"):
            await handler()
    """
    ctx = RequestContext(
        request_id=request_id,
        tenant_id=tenant_id,
        account_id=account_id,
        role=role,
    )
    request_token = _current_request.set(ctx)
    tenant_token = _current_tenant.set(tenant_id)
    account_token = _current_account.set(account_id)
    try:
        yield ctx
    finally:
        _current_account.reset(account_token)
        _current_tenant.reset(tenant_token)
        _current_request.reset(request_token)
