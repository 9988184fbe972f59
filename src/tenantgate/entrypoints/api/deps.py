"""Dependency injection and application lifespan management."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from tenantgate.adapters.audit.sink import InMemoryAuditSink, PostgresAuditSink
from tenantgate.adapters.auth.memory import InMemoryIdentityRepository
from tenantgate.adapters.auth.postgres import PostgresIdentityRepository
from tenantgate.adapters.db.app_db import AppDatabase
from tenantgate.config import Settings
from tenantgate.core.audit import AuditSink
from tenantgate.core.auth.bootstrap import BootstrapIdentity
from tenantgate.core.auth.invitations import InvitationLedger
from tenantgate.core.auth.jwt import TokenCodec
from tenantgate.core.auth.password_reset import LoggingResetNotifier, PasswordResetService
from tenantgate.core.auth.registration import IdentityRegistrar
from tenantgate.core.auth.repository import IdentityRepository
from tenantgate.core.auth.service import AuthService

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = structlog.get_logger()


def wire_services(app: FastAPI, repo: IdentityRepository, audit: AuditSink) -> None:
    """Build the services over ``repo`` and store them in app state."""
    settings: Settings = app.state.settings

    codec = TokenCodec.from_settings(settings)
    ledger = InvitationLedger(
        repo,
        audit=audit,
        default_ttl_days=settings.invitation_expiry_days,
    )
    bootstrap = BootstrapIdentity(repo, email=settings.system_bot_email)

    app.state.repo = repo
    app.state.audit = audit
    app.state.codec = codec
    app.state.ledger = ledger
    app.state.bootstrap = bootstrap
    app.state.registrar = IdentityRegistrar(repo, ledger, bootstrap, audit=audit)
    app.state.auth_service = AuthService(repo, codec, audit=audit)
    app.state.reset_service = PasswordResetService(
        repo,
        notifier=LoggingResetNotifier(),
        expiry_hours=settings.password_reset_expiry_hours,
        audit=audit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - setup and teardown.

    This context manager handles:
    - Store selection (PostgreSQL or in-memory)
    - Database connection pool setup and schema creation
    - Service wiring
    """
    settings: Settings = app.state.settings
    app_db: AppDatabase | None = None

    if settings.use_memory_store:
        logger.warning("using_in_memory_store")
        wire_services(app, InMemoryIdentityRepository(), InMemoryAuditSink())
    else:
        app_db = AppDatabase(settings.database_url)
        await app_db.connect()
        await app_db.apply_schema()
        wire_services(app, PostgresIdentityRepository(app_db), PostgresAuditSink(app_db))

    app.state.app_db = app_db

    yield

    if app_db is not None:
        await app_db.close()


def get_auth_service(request: Request) -> AuthService:
    """Get auth service from app state."""
    service: AuthService = request.app.state.auth_service
    return service


def get_registrar(request: Request) -> IdentityRegistrar:
    """Get identity registrar from app state."""
    registrar: IdentityRegistrar = request.app.state.registrar
    return registrar


def get_ledger(request: Request) -> InvitationLedger:
    """Get invitation ledger from app state."""
    ledger: InvitationLedger = request.app.state.ledger
    return ledger


def get_reset_service(request: Request) -> PasswordResetService:
    """Get password reset service from app state."""
    service: PasswordResetService = request.app.state.reset_service
    return service
