"""Audit sink protocol used by the core services."""

from typing import Any, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class AuditSink(Protocol):
    """Best-effort observer of identity changes.

    Implementations read the tenant and actor from the request context and
    must never raise: a failed audit write is logged and dropped so it cannot
    abort the business operation that triggered it.
    """

    async def record(
        self,
        action: str,
        target_type: str,
        target_id: UUID | None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        """Record an audit event."""
        ...
