"""Password reset by one-time token.

Only the SHA-256 hash of a reset token is stored. Requesting a reset never
reveals whether the email exists.
"""

from typing import Protocol, runtime_checkable
from uuid import UUID

import structlog

from tenantgate.core.audit import AuditSink
from tenantgate.core.auth.password import hash_password
from tenantgate.core.auth.repository import IdentityRepository
from tenantgate.core.auth.tokens import (
    RESET_TOKEN_EXPIRY_HOURS,
    generate_opaque_token,
    get_token_expiry,
    hash_token,
    is_token_expired,
    utcnow,
)
from tenantgate.core.auth.types import normalize_email
from tenantgate.core.exceptions import ResetTokenInvalid, ResetTokenNotFound

logger = structlog.get_logger()


@runtime_checkable
class ResetNotifier(Protocol):
    """Delivers a plaintext reset token to the account owner."""

    async def send_reset(self, account_id: UUID, email: str, token: str) -> bool:
        """Deliver the token.

        Returns:
            True if delivery was initiated.
        """
        ...


class LoggingResetNotifier:
    """Notifier that only logs that a token was issued.

    Email delivery is out of scope; deployments plug in their own notifier.
    """

    async def send_reset(self, account_id: UUID, email: str, token: str) -> bool:
        """Log the request without the token itself."""
        logger.info("password_reset_token_issued", account_id=str(account_id))
        return True


class PasswordResetService:
    """Service for requesting and confirming password resets."""

    def __init__(
        self,
        repo: IdentityRepository,
        notifier: ResetNotifier,
        expiry_hours: int = RESET_TOKEN_EXPIRY_HOURS,
        audit: AuditSink | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            repo: Identity repository.
            notifier: Delivery channel for the plaintext token.
            expiry_hours: Token lifetime.
            audit: Optional audit sink.
        """
        self._repo = repo
        self._notifier = notifier
        self._expiry_hours = expiry_hours
        self._audit = audit

    async def request_reset(self, email: str) -> None:
        """Issue a reset token for ``email`` if it belongs to an active account.

        For security, this always succeeds (doesn't reveal if email exists).
        Any previously issued token of the account stops working.

        Args:
            email: Account email address.
        """
        account = await self._repo.get_account_by_email(normalize_email(email))
        if account is None:
            logger.info("password_reset_requested_unknown_email")
            return

        if not account.is_active or account.password_hash is None:
            # Inactive and password-less (system) accounts cannot reset
            logger.info("password_reset_requested_ineligible", account_id=str(account.id))
            return

        token = generate_opaque_token()
        now = utcnow()
        async with self._repo.transaction():
            await self._repo.invalidate_reset_tokens(account.id, now)
            await self._repo.create_reset_token(
                account_id=account.id,
                token_hash=hash_token(token),
                expires_at=get_token_expiry(self._expiry_hours, now=now),
            )

        sent = await self._notifier.send_reset(account.id, account.email, token)
        if not sent:
            # Don't raise - we don't want to reveal delivery status
            logger.error("password_reset_delivery_failed", account_id=str(account.id))

    async def confirm_reset(self, token: str, new_password: str) -> None:
        """Set a new password using a reset token.

        Args:
            token: Plaintext token from the reset request.
            new_password: New password; strength is checked by the caller.

        Raises:
            ResetTokenNotFound: No token matches.
            ResetTokenInvalid: Token expired, used, or its account is gone.
        """
        record = await self._repo.get_reset_token(hash_token(token))
        if record is None:
            logger.warning("password_reset_invalid_token")
            raise ResetTokenNotFound()

        now = utcnow()
        if record.used_at is not None or is_token_expired(record.expires_at, now=now):
            logger.warning("password_reset_token_unusable", token_id=str(record.id))
            raise ResetTokenInvalid()

        async with self._repo.transaction():
            account = await self._repo.get_account_by_id(record.account_id)
            if account is None or not account.is_active:
                raise ResetTokenInvalid()

            if not await self._repo.mark_reset_token_used(record.id, now):
                # Redeemed concurrently
                raise ResetTokenInvalid()

            await self._repo.update_password(
                account_id=account.id,
                password_hash=hash_password(new_password),
                updated_by=account.id,
            )

        logger.info("password_reset_completed", account_id=str(account.id))
        if self._audit is not None:
            await self._audit.record(
                action="account.password_reset",
                target_type="account",
                target_id=account.id,
            )
