"""API middleware."""

from tenantgate.entrypoints.api.middleware.jwt_auth import (
    AuthContext,
    RequireAdmin,
    RequireAuth,
    require_auth,
    require_role,
)
from tenantgate.entrypoints.api.middleware.request_gate import RequestGate

__all__ = [
    # Route guards
    "AuthContext",
    "require_auth",
    "require_role",
    "RequireAuth",
    "RequireAdmin",
    # Middleware
    "RequestGate",
]
