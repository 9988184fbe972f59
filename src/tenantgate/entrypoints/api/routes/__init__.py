"""API route modules."""

from fastapi import APIRouter

from tenantgate.entrypoints.api.routes.auth import router as auth_router
from tenantgate.entrypoints.api.routes.invitations import router as invitations_router

# Create main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(auth_router)
api_router.include_router(invitations_router)

__all__ = ["api_router"]
