"""Audit logging adapters."""

from tenantgate.adapters.audit.sink import (
    BaseAuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    PostgresAuditSink,
)
from tenantgate.adapters.audit.types import AuditRecord

__all__ = [
    "AuditRecord",
    "BaseAuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "PostgresAuditSink",
]
