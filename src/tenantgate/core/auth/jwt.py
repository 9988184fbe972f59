"""JWT token creation and validation."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt

from tenantgate.config import Settings
from tenantgate.core.auth.types import TokenPayload

# Claims every token must carry; anything less is rejected.
REQUIRED_CLAIMS = ["sub", "company_id", "role", "iat", "exp"]


class TokenError(Exception):
    """Raised when token validation fails.

    The message is always ``"Invalid token"``: expired, tampered and
    malformed tokens are indistinguishable to the caller.
    """

    def __init__(self) -> None:
        """Initialize with the uniform message."""
        super().__init__("Invalid token")


class TokenCodec:
    """Signs and verifies bearer tokens carrying tenant and role claims."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta = timedelta(hours=24),
        algorithm: str = "HS256",
    ) -> None:
        """Initialize the codec.

        Args:
            secret: Shared signing secret.
            ttl: Lifetime of issued tokens.
            algorithm: PyJWT signing algorithm.
        """
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        """Build a codec from the JWT_* settings."""
        return cls(
            secret=settings.jwt_secret_key,
            ttl=timedelta(hours=settings.jwt_expiration_hours),
            algorithm=settings.jwt_algorithm,
        )

    @property
    def ttl(self) -> timedelta:
        """Token lifetime."""
        return self._ttl

    def issue(
        self,
        account_id: UUID | str,
        tenant_id: UUID | str,
        role: str,
        now: datetime | None = None,
    ) -> str:
        """Create a signed token.

        Args:
            account_id: Account identifier, stored as ``sub``.
            tenant_id: Active tenant, stored as ``company_id``.
            role: Account's role within the tenant.
            now: Issue time; defaults to the current UTC time.

        Returns:
            Encoded JWT string
        """
        issued_at = now or datetime.now(UTC)
        expire = issued_at + self._ttl

        payload = {
            "sub": str(account_id),
            "company_id": str(tenant_id),
            "role": role,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
        }

        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenPayload:
        """Decode and validate a token.

        Args:
            token: Encoded JWT string

        Returns:
            Decoded token payload

        Raises:
            TokenError: If the token is malformed, expired, mis-signed or
                missing a claim.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
            return TokenPayload(
                sub=payload["sub"],
                company_id=payload["company_id"],
                role=payload["role"],
                iat=payload["iat"],
                exp=payload["exp"],
            )
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
            raise TokenError() from None

