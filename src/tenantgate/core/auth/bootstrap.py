"""System actor used as the author of writes made outside a session.

The bootstrap account owns itself: its ``created_by`` and ``updated_by``
point at its own id. Since that id does not exist until the row is
inserted, creation runs in two phases inside the caller's transaction:

1. insert with a throwaway placeholder actor (``ON CONFLICT DO NOTHING`` on
   the email, so concurrent first callers cannot create two rows);
2. patch both actor columns to the id the insert produced.

A caller that loses the insert race re-reads the winner's row.
"""

from uuid import UUID, uuid4

import structlog

from tenantgate.core.auth.repository import IdentityRepository

logger = structlog.get_logger()


class BootstrapIdentity:
    """Resolves (creating at most once) the system actor account."""

    def __init__(self, repo: IdentityRepository, email: str) -> None:
        """Initialize with the repository and the well-known email.

        Args:
            repo: Identity repository.
            email: Reserved address of the system actor.
        """
        self._repo = repo
        self._email = email

    @property
    def email(self) -> str:
        """Well-known address of the system actor."""
        return self._email

    async def resolve(self) -> UUID:
        """Return the system actor id, creating the account if needed.

        Returns:
            Id of the bootstrap account.

        Raises:
            RuntimeError: If the account vanished between a lost insert race
                and the re-read.
        """
        async with self._repo.transaction():
            existing = await self._repo.get_account_by_email(self._email)
            if existing is not None:
                return existing.id

            inserted = await self._repo.insert_account_if_absent(
                email=self._email,
                placeholder_actor=uuid4(),
            )
            if inserted is None:
                winner = await self._repo.get_account_by_email(self._email)
                if winner is None:
                    raise RuntimeError("Bootstrap account disappeared after insert conflict")
                logger.debug("bootstrap_identity_conflict_refetched", account_id=str(winner.id))
                return winner.id

            await self._repo.set_account_actors(inserted.id, inserted.id)
            logger.info("bootstrap_identity_created", account_id=str(inserted.id))
            return inserted.id
