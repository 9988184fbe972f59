"""Identity repository adapters."""

from tenantgate.adapters.auth.memory import InMemoryIdentityRepository
from tenantgate.adapters.auth.postgres import PostgresIdentityRepository
from tenantgate.core.auth.repository import DuplicateKeyError

__all__ = [
    "DuplicateKeyError",
    "InMemoryIdentityRepository",
    "PostgresIdentityRepository",
]
