"""Secure token generation for invitations and password reset."""

import hashlib
import secrets
from datetime import UTC, datetime, timedelta

# Token configuration
OPAQUE_TOKEN_BYTES = 32  # 256 bits of entropy
RESET_TOKEN_EXPIRY_HOURS = 24


def generate_opaque_token() -> str:
    """Generate a cryptographically secure, URL-safe token.

    Returns:
        URL-safe base64 encoded token string.
    """
    return secrets.token_urlsafe(OPAQUE_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Hash a token for secure storage.

    Uses SHA-256 for fast lookup while maintaining security.
    The token itself has enough entropy that rainbow tables are infeasible.

    Args:
        token: The plaintext token to hash.

    Returns:
        Hex-encoded SHA-256 hash of the token.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def get_token_expiry(
    hours: int = RESET_TOKEN_EXPIRY_HOURS, now: datetime | None = None
) -> datetime:
    """Calculate token expiry timestamp.

    Args:
        hours: Number of hours until expiry.
        now: Reference time; defaults to the current UTC time.

    Returns:
        UTC datetime when the token expires.
    """
    return (now or utcnow()) + timedelta(hours=hours)


def is_token_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    """Check if a token has expired.

    Args:
        expires_at: The token's expiry timestamp.
        now: Reference time; defaults to the current UTC time.

    Returns:
        True if the token has expired.
    """
    # Handle timezone-naive datetimes
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return (now or utcnow()) >= expires_at
