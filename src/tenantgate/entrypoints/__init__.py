"""Entrypoints - outer surfaces that drive the core."""
