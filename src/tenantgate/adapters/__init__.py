"""Adapters - Infrastructure implementations of core interfaces.

This package contains the concrete implementations of the Protocol
interfaces defined in the core module: the PostgreSQL pool, identity
repositories and audit sinks.
"""
