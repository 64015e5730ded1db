"""
Guest checkout OTP service.

This module provides the checkout flow: issuing a code to a phone or email,
resending it (optionally by email), and exchanging a verified code for a
checkout session.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import otp_logger, settings
from app.core.db.crud import guest_identity_db, otp_challenge_db
from app.core.enums import DeliveryChannel, OTPPurpose, PreferredChannel
from app.core.exceptions.types import MissingContactException, UnknownEmailException
from app.core.services.challenge import (
    ChallengeService,
    IssuedChallenge,
    challenge_service,
)
from app.core.services.identity import (
    IdentityResolver,
    ResolvedIdentity,
    identity_resolver,
)
from app.core.services.session import IssuedSession, SessionIssuer, session_issuer
from app.core.services.verification import VerificationEngine, verification_engine
from app.core.utils import mask_email, mask_phone


@dataclass
class CheckoutVerification:
    session: IssuedSession
    resolved: ResolvedIdentity


def delivered_to(issued: IssuedChallenge) -> str:
    """Masked contact the code was actually sent to."""
    challenge = issued.challenge
    if issued.sent_via == DeliveryChannel.SECONDARY and challenge.email:
        return mask_email(challenge.email)
    if challenge.phone:
        return mask_phone(challenge.phone)
    return mask_email(challenge.email or challenge.contact_key)


def sent_message(issued: IssuedChallenge) -> str:
    if issued.sent_via == DeliveryChannel.SECONDARY:
        return "Verification code sent via email."
    return "Verification code sent via WhatsApp."


class CheckoutOTPService:
    """Service for the guest checkout OTP flow."""

    def __init__(
        self,
        challenges: ChallengeService | None = None,
        engine: VerificationEngine | None = None,
        resolver: IdentityResolver | None = None,
        issuer: SessionIssuer | None = None,
    ):
        self.challenges = challenges or challenge_service
        self.engine = engine or verification_engine
        self.resolver = resolver or identity_resolver
        self.issuer = issuer or session_issuer

    async def request_otp(
        self,
        session: AsyncSession,
        phone: str | None = None,
        email: str | None = None,
        prefer_email: bool = False,
    ) -> IssuedChallenge:
        """
        Issue a checkout code.

        The phone is the verification target when given, otherwise the email.
        WhatsApp is tried first unless `prefer_email` is set.

        Raises:
            MissingContactException: Neither phone nor email was given.
            RateLimitExceededException: Too many codes for this contact.
            OTPSendFailedException: No channel delivered the code.
        """
        contact_key = phone or email
        if not contact_key:
            raise MissingContactException()

        identity = await guest_identity_db.get_by_contact(session, phone, email)
        prefer = (
            DeliveryChannel.SECONDARY
            if prefer_email and email
            else DeliveryChannel.PRIMARY
        )

        return await self.challenges.issue(
            session,
            OTPPurpose.CHECKOUT,
            contact_key,
            phone=phone,
            email=email,
            prefer=prefer,
            related_identity_id=identity.id if identity else None,
        )

    async def resend_otp(
        self,
        session: AsyncSession,
        phone: str,
        preferred_channel: PreferredChannel = PreferredChannel.WHATSAPP,
        email: str | None = None,
    ) -> IssuedChallenge:
        """
        Issue a fresh checkout code for a phone, optionally by email.

        Resends get a slightly higher rate limit ceiling than first requests.
        When no email is given, the email of the phone's identity is used as
        fallback if there is one.

        Raises:
            MissingContactException: Email delivery asked for without an email.
            UnknownEmailException: Ownership check is on and the email was
                never linked to this phone.
            RateLimitExceededException: Too many codes for this phone.
            OTPSendFailedException: No channel delivered the code.
        """
        identity = await guest_identity_db.get_by_phone(session, phone)

        if email and settings.OTP_RESEND_REQUIRE_KNOWN_EMAIL:
            known = (
                identity is not None and identity.email == email
            ) or await otp_challenge_db.email_known_for_phone(session, phone, email)
            if not known:
                otp_logger.warning(
                    f"Resend for {mask_phone(phone)} refused: {mask_email(email)} not linked"
                )
                raise UnknownEmailException()

        email = email or (identity.email if identity else None)
        if preferred_channel == PreferredChannel.EMAIL and not email:
            raise MissingContactException(
                "An email address is required to resend the code by email."
            )

        prefer = (
            DeliveryChannel.SECONDARY
            if preferred_channel == PreferredChannel.EMAIL
            else DeliveryChannel.PRIMARY
        )
        return await self.challenges.issue(
            session,
            OTPPurpose.CHECKOUT,
            phone,
            phone=phone,
            email=email,
            prefer=prefer,
            max_requests=settings.resend_max_requests,
            related_identity_id=identity.id if identity else None,
        )

    async def verify_otp(
        self,
        session: AsyncSession,
        otp_id: UUID,
        code: str,
        phone: str | None = None,
        email: str | None = None,
    ) -> CheckoutVerification:
        """
        Verify a checkout code and open a checkout session.

        Raises:
            MissingContactException: Neither phone nor email was given.
            AppException: Any verification failure from the engine.
        """
        contact_key = phone or email
        if not contact_key:
            raise MissingContactException()

        verified = await self.engine.verify(
            session, otp_id, code, contact_key, purpose=OTPPurpose.CHECKOUT
        )
        resolved = await self.resolver.resolve(
            session, verified.contact_key, OTPPurpose.CHECKOUT
        )
        issued = self.issuer.issue(
            resolved.identity.id, OTPPurpose.CHECKOUT, verified.contact_key
        )
        return CheckoutVerification(session=issued, resolved=resolved)


checkout_otp_service = CheckoutOTPService()


__all__ = [
    "CheckoutOTPService",
    "CheckoutVerification",
    "checkout_otp_service",
    "delivered_to",
    "sent_message",
]
