"""tenantgate - multi-tenant identity layer: sessions, tenant context and invitations."""

__version__ = "0.1.0"
