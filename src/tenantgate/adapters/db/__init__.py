"""Database adapters."""

from tenantgate.adapters.db.app_db import AppDatabase

__all__ = ["AppDatabase"]
