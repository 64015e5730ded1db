"""
Verification of submitted OTP codes against stored challenges.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import otp_logger
from app.core.db.crud import otp_challenge_db
from app.core.db.models import OTPChallenge
from app.core.enums import OTPPurpose
from app.core.exceptions.types import (
    ContactMismatchException,
    OTPAlreadyUsedException,
    OTPExpiredException,
    OTPInvalidException,
    OTPNotFoundException,
    TooManyAttemptsException,
)
from app.core.utils import mask_contact, verify_otp_code


@dataclass
class VerificationSuccess:
    """A challenge that this call verified."""

    challenge: OTPChallenge

    @property
    def contact_key(self) -> str:
        return self.challenge.contact_key


class VerificationEngine:
    """
    Checks a submitted code against a challenge.

    The checks run in a fixed order and the first failing one raises:

    1. the challenge exists (and was issued for the expected purpose)
    2. the submitted contact matches the challenge
    3. the challenge has not expired
    4. the challenge has not been verified yet
    5. attempts remain

    An attempt is consumed and committed before the code is compared, so a
    comparison that blows up still costs an attempt. The final flip to
    verified is conditional on the row still being unverified, unsuperseded
    and unexpired. A caller that loses to a concurrent verification gets
    `OTPAlreadyUsedException`; one overtaken by a newer request or by the
    clock gets `OTPExpiredException`.
    """

    @staticmethod
    def contact_matches(challenge: OTPChallenge, contact_key: str) -> bool:
        return contact_key in {
            value
            for value in (challenge.contact_key, challenge.phone, challenge.email)
            if value
        }

    async def verify(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        submitted_code: str,
        contact_key: str,
        purpose: OTPPurpose | None = None,
    ) -> VerificationSuccess:
        """
        Verify `submitted_code` for a challenge.

        Args:
            session: The async database session. This method commits it.
            challenge_id: The challenge handed to the client.
            submitted_code: The code typed by the user.
            contact_key: Phone or email the client claims the code was sent to.
            purpose: Purpose the caller is opening a session for. A challenge
                issued for another purpose is reported as unknown.

        Returns:
            VerificationSuccess holding the verified challenge.

        Raises:
            OTPNotFoundException: Unknown challenge id.
            ContactMismatchException: Contact differs from the challenge target.
            OTPExpiredException: The challenge expired or was superseded.
            OTPAlreadyUsedException: The challenge was already verified.
            TooManyAttemptsException: No attempts are left.
            OTPInvalidException: Wrong code, with the remaining attempts.
            DatabaseException: If a database error occurs.
        """
        challenge = await otp_challenge_db.get_by_id(
            session, challenge_id, populate_existing=True
        )
        if challenge is None or (purpose is not None and challenge.purpose != purpose):
            raise OTPNotFoundException()

        if not self.contact_matches(challenge, contact_key):
            otp_logger.warning(
                f"Contact mismatch on challenge {challenge_id} for {mask_contact(contact_key)}"
            )
            raise ContactMismatchException()

        if challenge.is_expired():
            raise OTPExpiredException()

        if challenge.verified:
            raise OTPAlreadyUsedException()

        if challenge.attempts >= challenge.max_attempts:
            raise TooManyAttemptsException()

        attempts = await otp_challenge_db.increment_attempts(
            session, challenge_id, commit_self=True
        )
        if attempts is None:
            raise TooManyAttemptsException()

        if not verify_otp_code(submitted_code, challenge.code_hash):
            remaining = max(0, challenge.max_attempts - attempts)
            otp_logger.info(
                f"Wrong code for challenge {challenge_id}; {remaining} attempt(s) left"
            )
            raise OTPInvalidException(
                message=(
                    f"Invalid OTP code. {remaining} attempt(s) remaining."
                    if remaining
                    else "Invalid OTP code. No attempts remaining."
                ),
                remaining_attempts=remaining,
            )

        won = await otp_challenge_db.mark_verified(
            session, challenge_id, commit_self=True
        )
        if not won:
            current = await otp_challenge_db.get_by_id(
                session, challenge_id, populate_existing=True
            )
            if (
                current is not None
                and not current.verified
                and (current.superseded_at is not None or current.is_expired())
            ):
                otp_logger.warning(
                    f"Challenge {challenge_id} was superseded or expired "
                    "before it could be verified"
                )
                raise OTPExpiredException()
            otp_logger.warning(f"Challenge {challenge_id} was verified concurrently")
            raise OTPAlreadyUsedException()

        await session.refresh(challenge)
        otp_logger.info(
            f"Challenge {challenge_id} verified for {mask_contact(challenge.contact_key)}"
        )
        return VerificationSuccess(challenge=challenge)


verification_engine = VerificationEngine()


__all__ = ["VerificationSuccess", "VerificationEngine", "verification_engine"]
