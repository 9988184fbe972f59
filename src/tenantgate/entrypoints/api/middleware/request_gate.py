"""Per-request correlation id, token verification and tenant context."""

import uuid
from collections.abc import Awaitable, Callable
from uuid import UUID

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tenantgate.core.auth.jwt import TokenCodec, TokenError
from tenantgate.core.auth.types import MemberRole
from tenantgate.core.context import clear_tenant, request_scope
from tenantgate.entrypoints.api.middleware.jwt_auth import AuthContext

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
        return incoming
    return str(uuid.uuid4())


class RequestGate(BaseHTTPMiddleware):
    """Binds identity and correlation data for the lifetime of a request.

    A missing or unverifiable token never rejects the request here; the
    request simply continues unauthenticated and route guards decide. The
    tenant context and structlog context are cleared on every exit path.
    """

    def __init__(self, app: ASGIApp, codec: TokenCodec | None = None) -> None:
        """Initialize the gate.

        Args:
            app: Downstream ASGI app.
            codec: Token codec; when None, ``app.state.codec`` is used.
        """
        super().__init__(app)
        self._codec = codec

    def _resolve_codec(self, request: Request) -> TokenCodec:
        if self._codec is not None:
            return self._codec
        codec: TokenCodec = request.app.state.codec
        return codec

    def _authenticate(self, request: Request) -> AuthContext | None:
        token = _bearer_token(request)
        if token is None:
            return None
        try:
            payload = self._resolve_codec(request).verify(token)
            return AuthContext(
                account_id=UUID(payload.sub),
                tenant_id=UUID(payload.company_id),
                role=MemberRole(payload.role),
            )
        except (TokenError, ValueError):
            logger.info("bearer_token_rejected", path=request.url.path)
            return None

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request."""
        request_id = _request_id(request)
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            auth = self._authenticate(request)
            request.state.auth = auth
            if auth is not None:
                structlog.contextvars.bind_contextvars(
                    tenant_id=str(auth.tenant_id),
                    account_id=str(auth.account_id),
                )

            with request_scope(
                request_id,
                tenant_id=auth.tenant_id if auth else None,
                account_id=auth.account_id if auth else None,
                role=auth.role.value if auth else None,
            ):
                response = await call_next(request)

            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_tenant()
            structlog.contextvars.clear_contextvars()
