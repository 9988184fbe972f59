"""Core domain - identity business logic with no web framework dependencies."""

from .context import (
    RequestContext,
    clear_tenant,
    get_current_account_id,
    get_tenant,
    request_scope,
    require_tenant,
    set_tenant,
)
from .exceptions import TenantgateError

__all__ = [
    # Context
    "RequestContext",
    "clear_tenant",
    "get_current_account_id",
    "get_tenant",
    "request_scope",
    "require_tenant",
    "set_tenant",
    # Exceptions
    "TenantgateError",
]
