"""Application settings loaded from environment."""

from __future__ import annotations

import os
from functools import lru_cache


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.app_name = os.getenv("APP_NAME", "tenantgate")
        self.database_url = os.getenv("DATABASE_URL", "postgresql://localhost:5432/tenantgate")
        self.use_memory_store = _env_bool("USE_MEMORY_STORE")

        # Token signing
        self.jwt_secret_key = os.getenv("JWT_SECRET_KEY", "dev-secret-change-in-production")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.jwt_expiration_hours = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

        # Onboarding
        self.invitation_expiry_days = int(os.getenv("INVITATION_EXPIRY_DAYS", "7"))
        self.password_reset_expiry_hours = int(os.getenv("PASSWORD_RESET_EXPIRY_HOURS", "24"))
        self.system_bot_email = os.getenv("SYSTEM_BOT_EMAIL", "system-bot@tenantgate.local")

        # Transport
        self.cors_allow_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_json = _env_bool("LOG_JSON")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
