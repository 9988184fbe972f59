"""Route guards over the identity bound by the request gate."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends, Request

from tenantgate.core.auth.types import ROLE_HIERARCHY, MemberRole
from tenantgate.core.exceptions import AuthenticationFailure, PermissionDenied

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthContext:
    """Context from a verified bearer token."""

    account_id: UUID
    tenant_id: UUID
    role: MemberRole


def require_auth(request: Request) -> AuthContext:
    """Return the verified identity of the request.

    Args:
        request: The current request.

    Returns:
        AuthContext set by the request gate.

    Raises:
        AuthenticationFailure: 401 if the request carried no valid token.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        raise AuthenticationFailure()
    return auth


def require_role(min_role: MemberRole) -> Callable[..., Any]:
    """Dependency to require a minimum role level.

    Role hierarchy (lowest to highest):
    - employee
    - manager
    - admin: can invite and cancel invitations
    - system_admin

    Usage:
        @router.post("")
        async def create_item(
            auth: Annotated[AuthContext, Depends(require_role(MemberRole.ADMIN))],
        ):
            ...

    Args:
        min_role: Minimum required role.

    Returns:
        Dependency function that validates role.
    """

    async def role_checker(
        auth: Annotated[AuthContext, Depends(require_auth)],
    ) -> AuthContext:
        user_role_idx = ROLE_HIERARCHY.index(auth.role)
        required_role_idx = ROLE_HIERARCHY.index(min_role)

        if user_role_idx < required_role_idx:
            logger.info(
                "role_check_failed",
                role=auth.role.value,
                required=min_role.value,
            )
            raise PermissionDenied(f"Role '{min_role.value}' or higher required")
        return auth

    return role_checker


# Common role dependencies for convenience
RequireAuth = Annotated[AuthContext, Depends(require_auth)]
RequireAdmin = Annotated[AuthContext, Depends(require_role(MemberRole.ADMIN))]
