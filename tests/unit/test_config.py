"""Tests for settings loading."""

import pytest

from tenantgate.config import Settings


class TestSettings:
    """Environment-driven settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without overrides the documented defaults apply."""
        for name in ("USE_MEMORY_STORE", "JWT_EXPIRATION_HOURS", "INVITATION_EXPIRY_DAYS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings()

        assert settings.use_memory_store is False
        assert settings.jwt_algorithm == "HS256"
        assert settings.jwt_expiration_hours == 24
        assert settings.invitation_expiry_days == 7
        assert settings.password_reset_expiry_hours == 24

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override defaults."""
        monkeypatch.setenv("USE_MEMORY_STORE", "true")
        monkeypatch.setenv("JWT_EXPIRATION_HOURS", "1")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example,")

        settings = Settings()

        assert settings.use_memory_store is True
        assert settings.jwt_expiration_hours == 1
        assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]
