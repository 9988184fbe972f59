"""FastAPI application definition."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantgate import __version__
from tenantgate.config import Settings, get_settings
from tenantgate.core.exceptions import TenantgateError
from tenantgate.log_config import configure_logging

from .deps import lifespan
from .middleware.request_gate import RequestGate
from .responses import error
from .routes import api_router

logger = structlog.get_logger()

_HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


async def handle_tenantgate_error(request: Request, exc: Exception) -> JSONResponse:
    """Render a domain error as the failure envelope."""
    assert isinstance(exc, TenantgateError)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return error(
        request,
        exc.status_code,
        exc.code,
        exc.message,
        details=exc.details,
        headers=headers,
    )


async def handle_validation_error(request: Request, exc: Exception) -> JSONResponse:
    """Render request validation failures as VALIDATION_ERROR with per-field details."""
    assert isinstance(exc, RequestValidationError)
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{location}: {err.get('msg', 'invalid')}" if location else err.get("msg"))
    return error(request, 400, "VALIDATION_ERROR", "Invalid input", details=details)


async def handle_http_error(request: Request, exc: Exception) -> JSONResponse:
    """Render framework HTTP errors (unknown route, wrong method) in the envelope."""
    assert isinstance(exc, StarletteHTTPException)
    code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return error(request, exc.status_code, code, str(exc.detail))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log and hide anything that is not a domain error."""
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)
    return error(request, 500, "INTERNAL_SERVER_ERROR", "An unexpected error occurred")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to the environment.

    Returns:
        Configured application. Services are wired by the lifespan.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant identity: sessions, tenant context and invitations",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,  # Prevent 307 redirects that lose auth headers
    )
    app.state.settings = settings

    app.add_exception_handler(TenantgateError, handle_tenantgate_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.add_middleware(RequestGate)
    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
