"""
Issuing OTP challenges.

Both flows issue codes the same way: check the per-contact rate limit,
retire the previous active challenge, store the new one as a bcrypt hash,
then deliver the code. The plaintext code only lives in this call.
"""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import otp_logger, settings
from app.core.db.crud import otp_challenge_db
from app.core.db.models import OTPChallenge
from app.core.db.models.base import utcnow
from app.core.enums import DeliveryChannel, OTPPurpose, SendFailureReason
from app.core.exceptions.types import OTPSendFailedException
from app.core.services.delivery import (
    ChannelOrchestrator,
    DeliveryResult,
    channel_orchestrator,
)
from app.core.services.rate_limit import RateLimiter, otp_rate_limiter
from app.core.utils import generate_otp_code, hash_otp_code, mask_contact


@dataclass
class IssuedChallenge:
    challenge: OTPChallenge
    delivery: DeliveryResult
    expires_in: int

    @property
    def sent_via(self) -> DeliveryChannel:
        return self.delivery.channel_used


def expiry_for(purpose: OTPPurpose) -> timedelta:
    if purpose == OTPPurpose.ORDER_TRACKING:
        return timedelta(minutes=settings.OTP_TRACKING_EXPIRY_MINUTES)
    return timedelta(minutes=settings.OTP_CHECKOUT_EXPIRY_MINUTES)


def send_failure_suggestion(reason: SendFailureReason | None, has_email: bool) -> str:
    """Guidance shown to the user when no channel delivered the code."""
    if reason == SendFailureReason.TIMEOUT:
        return (
            "WhatsApp is taking too long to respond. "
            "Add an email address to receive the code by email instead."
        )
    if reason == SendFailureReason.NO_SECONDARY_CHANNEL:
        return "WhatsApp delivery failed. Add an email address and try again."
    if has_email:
        return "We could not reach you on any channel. Please try again in a few minutes."
    return "Please try again in a few minutes or add an email address."


class ChallengeService:
    """
    Creates challenges and delivers their codes.

    Args:
        rate_limiter: Limiter consulted before every challenge.
        orchestrator: Delivery orchestrator for the code.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        orchestrator: ChannelOrchestrator | None = None,
    ):
        self.rate_limiter = rate_limiter or otp_rate_limiter
        self.orchestrator = orchestrator or channel_orchestrator

    async def issue(
        self,
        session: AsyncSession,
        purpose: OTPPurpose,
        contact_key: str,
        phone: str | None = None,
        email: str | None = None,
        prefer: DeliveryChannel = DeliveryChannel.PRIMARY,
        max_requests: int | None = None,
        related_identity_id: UUID | None = None,
    ) -> IssuedChallenge:
        """
        Issue a new challenge for `contact_key` and deliver its code.

        Args:
            session: The async database session. This method commits it.
            purpose: What the challenge unlocks.
            contact_key: The verification target.
            phone: Phone for the primary channel.
            email: Email for the secondary channel.
            prefer: Channel to try first.
            max_requests: Rate limit ceiling. Defaults to the request ceiling.
            related_identity_id: Identity already known for the contact.

        Returns:
            IssuedChallenge with the stored challenge and the delivery result.

        Raises:
            RateLimitExceededException: Too many challenges for the contact.
            OTPSendFailedException: No channel delivered the code.
            DatabaseException: If a database error occurs.
        """
        await self.rate_limiter.enforce(contact_key, max_requests=max_requests)

        ttl = expiry_for(purpose)
        code = generate_otp_code()

        challenge, superseded = await otp_challenge_db.replace_active(
            session,
            {
                "contact_key": contact_key,
                "phone": phone,
                "email": email,
                "purpose": purpose,
                "code_hash": hash_otp_code(code),
                "max_attempts": settings.OTP_MAX_ATTEMPTS,
                "expires_at": utcnow() + ttl,
                "related_identity_id": related_identity_id,
            },
        )

        otp_logger.info(
            f"Issued {purpose.value} challenge {challenge.id} for "
            f"{mask_contact(contact_key)} (superseded {superseded})"
        )

        delivery = await self.orchestrator.deliver(
            code,
            phone=phone,
            email=email,
            prefer=prefer,
            challenge_id=challenge.id,
        )
        if not delivery.success:
            otp_logger.warning(
                f"Challenge {challenge.id} undelivered: "
                f"{delivery.reason.value if delivery.reason else 'unknown'}"
            )
            raise OTPSendFailedException(
                reason=delivery.reason or SendFailureReason.CHANNEL_ERROR,
                suggestion=send_failure_suggestion(delivery.reason, bool(email)),
            )

        await otp_challenge_db.set_delivery_channel(
            session, challenge.id, delivery.channel_used, commit_self=True
        )
        return IssuedChallenge(
            challenge=challenge,
            delivery=delivery,
            expires_in=int(ttl.total_seconds()),
        )


challenge_service = ChallengeService()


__all__ = [
    "IssuedChallenge",
    "ChallengeService",
    "challenge_service",
    "expiry_for",
    "send_failure_suggestion",
]
