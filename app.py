"""Deployment entrypoint.

Serve with ``uvicorn app:app``; the FastAPI app lives in the package.
"""

from tenantgate.entrypoints.api.app import app

__all__ = ["app"]
