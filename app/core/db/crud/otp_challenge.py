"""
CRUD operations for the OTPChallenge model.

Every state transition that can race (attempt counting, the verified flip,
late delivery bookkeeping) is a single conditional UPDATE whose row count
tells the caller whether it won.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import case, literal, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import database_logger
from app.core.db.crud.base import BaseDB
from app.core.db.models.otp_challenge import OTPChallenge
from app.core.enums import DeliveryChannel, OTPPurpose
from app.core.exceptions.types import DatabaseException


class OTPChallengeDB(BaseDB[OTPChallenge]):
    """
    CRUD operations for OTPChallenge model.

    Provides the challenge store: creation, superseding older challenges,
    atomic attempt counting, the single-winner verified transition, the
    email ownership check used by resends, and purging.
    """

    def __init__(self):
        super().__init__(model=OTPChallenge)

    async def supersede_active(
        self,
        session: AsyncSession,
        contact_key: str,
        purpose: OTPPurpose,
        commit_self: bool = True,
    ) -> int:
        """
        Retire every unverified, unsuperseded challenge for a target and purpose.

        Challenges that already expired are retired too, so the partial unique
        index on active `(contact_key, purpose)` only ever sees the challenge
        about to be created. `expires_at` is pulled in to now where it lies in
        the future, so verifying a superseded challenge reports an expired code.

        Args:
            session: The async database session.
            contact_key: The verification target.
            purpose: The challenge purpose.
            commit_self: Whether to commit the session after updating.

        Returns:
            The number of challenges superseded.

        Raises:
            DatabaseException: If a database error occurs.
        """
        now = datetime.now(timezone.utc)
        return await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.contact_key == contact_key,
                self.model.purpose == purpose,
                self.model.verified.is_(False),
                self.model.superseded_at.is_(None),
            ],
            updates={
                "superseded_at": now,
                "expires_at": case(
                    (
                        self.model.expires_at > now,
                        literal(now, self.model.expires_at.type),
                    ),
                    else_=self.model.expires_at,
                ),
            },
            commit_self=commit_self,
        )

    async def replace_active(
        self,
        session: AsyncSession,
        data: dict,
        retries: int = 1,
    ) -> tuple[OTPChallenge, int]:
        """
        Supersede the active challenge for a target and insert a new one.

        Both statements commit together. Two concurrent requests for the same
        target can both find nothing to supersede; the partial unique index
        then rejects the later insert, which is rolled back and retried so it
        supersedes the winner, exactly as if the requests had run in turn.

        Args:
            session: The async database session. This method commits it.
            data: Column values for the new challenge, including
                `contact_key` and `purpose`.
            retries: How many unique-index conflicts to retry.

        Returns:
            The new challenge and the number of challenges it superseded.

        Raises:
            DatabaseException: If a database error occurs, or conflicts
                outlast the retries.
        """
        attempt = 0
        while True:
            try:
                superseded = await self.supersede_active(
                    session, data["contact_key"], data["purpose"], commit_self=False
                )
                challenge = await self.create(session, data, commit_self=False)
                await session.commit()
                return challenge, superseded
            except (DatabaseException, IntegrityError) as e:
                await session.rollback()
                conflict = isinstance(e, IntegrityError) or isinstance(
                    e.__cause__, IntegrityError
                )
                if not conflict or attempt >= retries:
                    raise
                attempt += 1
                database_logger.warning(
                    f"Concurrent challenge insert for {data['purpose'].value}; "
                    f"retrying ({attempt}/{retries})"
                )

    async def increment_attempts(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        commit_self: bool = True,
    ) -> int | None:
        """
        Consume one verification attempt if any are left.

        The increment and the `attempts < max_attempts` guard run in one
        UPDATE, so concurrent verifications can never push the counter past
        its ceiling.

        Args:
            session: The async database session.
            challenge_id: The challenge id.
            commit_self: Whether to commit the session after updating.

        Returns:
            The attempt count after incrementing, or None if no attempt was left.

        Raises:
            DatabaseException: If a database error occurs.
        """
        updated = await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.id == challenge_id,
                self.model.attempts < self.model.max_attempts,
            ],
            updates={"attempts": self.model.attempts + 1},
            commit_self=commit_self,
        )
        if not updated:
            return None

        try:
            result = await session.execute(
                select(self.model.attempts).where(self.model.id == challenge_id)
            )
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error reading attempts for OTPChallenge {challenge_id}: {str(e)}"
            ) from e

    async def mark_verified(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        commit_self: bool = True,
    ) -> bool:
        """
        Flip a challenge to verified if it is still verifiable.

        The row must be unverified, not superseded and not expired at the
        moment of the UPDATE, so a newer request that supersedes the challenge
        after the caller checked it still wins.

        Returns:
            True if this call performed the transition, False if the challenge
            was verified, superseded or expired in the meantime.

        Raises:
            DatabaseException: If a database error occurs.
        """
        now = datetime.now(timezone.utc)
        updated = await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.id == challenge_id,
                self.model.verified.is_(False),
                self.model.superseded_at.is_(None),
                self.model.expires_at > now,
            ],
            updates={
                "verified": True,
                "verified_at": now,
            },
            commit_self=commit_self,
        )
        return updated == 1

    async def set_delivery_channel(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        channel: DeliveryChannel,
        only_if_unset: bool = False,
        commit_self: bool = True,
    ) -> bool:
        """
        Record which channel delivered the code.

        Args:
            session: The async database session.
            challenge_id: The challenge id.
            channel: The delivering channel.
            only_if_unset: Only write when the stored channel is still NONE.
                Used by late deliveries finishing in the background.
            commit_self: Whether to commit the session after updating.

        Returns:
            True if the row was updated.
        """
        conditions = [self.model.id == challenge_id]
        if only_if_unset:
            conditions.append(self.model.delivery_channel == DeliveryChannel.NONE)

        updated = await self.update_by_conditions(
            session=session,
            conditions=conditions,
            updates={"delivery_channel": channel},
            commit_self=commit_self,
        )
        return updated == 1

    async def email_known_for_phone(
        self,
        session: AsyncSession,
        phone: str,
        email: str,
    ) -> bool:
        """Whether an earlier challenge already paired this phone with this email."""
        count = await self.count_by_conditions(
            session=session,
            conditions=[self.model.phone == phone, self.model.email == email],
        )
        return count > 0

    async def purge_expired(
        self,
        session: AsyncSession,
        retention_days: int,
        commit_self: bool = True,
    ) -> int:
        """
        Permanently delete challenges that expired more than `retention_days` ago.

        Returns:
            The number of challenges deleted.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        return await self.delete_by_conditions(
            session=session,
            conditions=[self.model.expires_at < cutoff],
            commit_self=commit_self,
        )


__all__ = ["OTPChallengeDB"]
