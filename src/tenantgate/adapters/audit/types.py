"""Audit log types."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditRecord(BaseModel):
    """One audit event, enriched with request context."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    tenant_id: UUID | None = None
    actor_id: UUID | None = None
    action: str
    target_type: str
    target_id: UUID | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    request_id: str | None = None
