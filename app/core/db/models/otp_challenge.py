"""
OTP challenge model.

A challenge is one issued verification code: the bcrypt hash of the code,
who it was sent to, what it unlocks, and how far its verification got.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.models.base import BaseModel, as_utc, utcnow
from app.core.enums import ChallengeState, DeliveryChannel, OTPPurpose


class OTPChallenge(BaseModel):
    """
    Model for storing issued OTP challenges.

    The plaintext code is never stored. Rows are never reactivated: once a
    challenge is verified, expired, exhausted or superseded it stays that way,
    and the maintenance job eventually deletes it.

    Attributes:
        contact_key: The verification target (phone if supplied, else email).
        phone: Phone number supplied with the request, if any.
        email: Email address supplied with the request, if any.
        purpose: What a successful verification unlocks.
        code_hash: bcrypt hash of the numeric code.
        attempts: Verification attempts consumed so far.
        max_attempts: Attempt ceiling for this challenge.
        expires_at: When the challenge stops being verifiable.
        verified: Whether the challenge was verified.
        verified_at: When the challenge was verified.
        superseded_at: When a newer challenge for the same target replaced this one.
        delivery_channel: Channel that delivered the code.
        related_identity_id: Identity already known for the contact at creation.
    """

    __tablename__ = "otp_challenges"
    __table_args__ = (
        Index("ix_otp_challenges_contact_key_purpose", "contact_key", "purpose"),
        # At most one live challenge per target and purpose
        Index(
            "uq_otp_challenges_active_contact_purpose",
            "contact_key",
            "purpose",
            unique=True,
            postgresql_where=text("verified = false AND superseded_at IS NULL"),
            sqlite_where=text("verified = false AND superseded_at IS NULL"),
        ),
    )

    contact_key: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(OTPPurpose, native_enum=False, name="otp_purpose"),
        nullable=False,
    )

    code_hash: Mapped[str] = mapped_column(
        String(60),  # bcrypt hashes are 60 characters
        nullable=False,
    )

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    superseded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    delivery_channel: Mapped[DeliveryChannel] = mapped_column(
        Enum(DeliveryChannel, native_enum=False, name="delivery_channel"),
        default=DeliveryChannel.NONE,
        nullable=False,
    )

    related_identity_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), nullable=True
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())

    def state_at(self, now: datetime | None = None) -> ChallengeState:
        """Derive the lifecycle state at the given instant."""
        if self.verified:
            return ChallengeState.VERIFIED
        if self.superseded_at is not None:
            return ChallengeState.SUPERSEDED
        if self.attempts >= self.max_attempts:
            return ChallengeState.EXHAUSTED
        if self.is_expired(now):
            return ChallengeState.EXPIRED
        return ChallengeState.PENDING_VERIFICATION

    @property
    def state(self) -> ChallengeState:
        return self.state_at()


__all__ = ["OTPChallenge"]
