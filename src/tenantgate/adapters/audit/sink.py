"""Audit sinks.

Every sink enriches the event with the tenant, actor and request id of the
current request and swallows write failures after logging them.
"""

import json
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog

from tenantgate.adapters.audit.types import AuditRecord
from tenantgate.adapters.db.app_db import AppDatabase
from tenantgate.core.context import current_request, get_current_account_id, get_tenant

logger = structlog.get_logger()


class BaseAuditSink(ABC):
    """Builds the record from context and absorbs failures of ``_write``."""

    async def record(
        self,
        action: str,
        target_type: str,
        target_id: UUID | None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        """Record an audit event. Never raises."""
        try:
            if request_id is None:
                ctx = current_request()
                request_id = ctx.request_id if ctx else None
            entry = AuditRecord(
                timestamp=datetime.now(UTC),
                tenant_id=get_tenant(),
                actor_id=get_current_account_id(),
                action=action,
                target_type=target_type,
                target_id=target_id,
                before=before,
                after=after,
                request_id=request_id,
            )
            await self._write(entry)
        except Exception as e:
            # Audit logging should never break the request
            logger.warning("audit_log_failed", action=action, error=str(e))

    @abstractmethod
    async def _write(self, entry: AuditRecord) -> None:
        """Persist one record."""
        ...


class PostgresAuditSink(BaseAuditSink):
    """Writes audit records to the ``audit_logs`` table."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize the sink.

        Args:
            db: Application database instance.
        """
        self._db = db

    async def _write(self, entry: AuditRecord) -> None:
        await self._db.execute(
            """
            INSERT INTO audit_logs (
                timestamp, tenant_id, actor_id, action, target_type, target_id,
                before, after, request_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8::jsonb, $9)
            """,
            entry.timestamp,
            entry.tenant_id,
            entry.actor_id,
            entry.action,
            entry.target_type,
            entry.target_id,
            json.dumps(entry.before) if entry.before is not None else None,
            json.dumps(entry.after) if entry.after is not None else None,
            entry.request_id,
        )


class InMemoryAuditSink(BaseAuditSink):
    """Keeps audit records in a list."""

    def __init__(self) -> None:
        """Initialize with no records."""
        self.records: list[AuditRecord] = []

    async def _write(self, entry: AuditRecord) -> None:
        self.records.append(entry)


class LoggingAuditSink(BaseAuditSink):
    """Emits audit records as structured log events."""

    async def _write(self, entry: AuditRecord) -> None:
        logger.info("audit_event", **entry.model_dump(mode="json", exclude={"before", "after"}))
