"""
Purpose-scoped bearer sessions.

Sessions are stateless JWTs. Every token carries a `purpose` claim and
every consumer must name the purpose it accepts, so a tracking session can
never authorize a checkout and the other way round.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from app.core.config import session_logger, settings
from app.core.enums import OTPPurpose
from app.core.exceptions.types import (
    AuthenticationException,
    SessionPurposeMismatchException,
)
from app.core.utils import create_jwt_token, decode_jwt_token, mask_contact


@dataclass
class IssuedSession:
    access_token: str
    expires_in: int
    token_type: str = "bearer"


@dataclass
class SessionClaims:
    """Validated claims of a session token."""

    subject_id: UUID
    purpose: OTPPurpose
    contact: str
    issued_at: datetime
    expires_at: datetime


class SessionIssuer:
    """Mints and checks purpose-scoped session tokens."""

    TOKEN_TYPE = "otp_session"

    @staticmethod
    def ttl_for(purpose: OTPPurpose) -> timedelta:
        if purpose == OTPPurpose.ORDER_TRACKING:
            return timedelta(minutes=settings.TRACKING_SESSION_TTL_MINUTES)
        return timedelta(minutes=settings.CHECKOUT_SESSION_TTL_MINUTES)

    def issue(
        self,
        identity_id: UUID,
        purpose: OTPPurpose,
        contact: str,
        ttl: timedelta | None = None,
    ) -> IssuedSession:
        """
        Sign a session for a verified identity.

        Args:
            identity_id: Subject of the session.
            purpose: What the session may authorize.
            contact: The verified phone or email.
            ttl: Lifetime. Defaults to the purpose's configured TTL.

        Returns:
            IssuedSession with the token and its lifetime in seconds.
        """
        ttl = ttl or self.ttl_for(purpose)
        token = create_jwt_token(
            {
                "sub": str(identity_id),
                "purpose": purpose.value,
                "contact": contact,
                "type": self.TOKEN_TYPE,
            },
            expires_delta=ttl,
        )
        session_logger.info(
            f"Issued {purpose.value} session for {mask_contact(contact)}"
        )
        return IssuedSession(access_token=token, expires_in=int(ttl.total_seconds()))

    def verify(self, token: str | None, required_purpose: OTPPurpose) -> SessionClaims:
        """
        Validate a session token for a given purpose.

        Raises:
            AuthenticationException: Missing, malformed, tampered or expired token.
            SessionPurposeMismatchException: Valid token issued for another purpose.
        """
        payload = decode_jwt_token(token)
        if payload is None or payload.get("type") != self.TOKEN_TYPE:
            raise AuthenticationException("Invalid or expired session token.")

        try:
            claims = SessionClaims(
                subject_id=UUID(payload["sub"]),
                purpose=OTPPurpose(payload["purpose"]),
                contact=payload["contact"],
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, ValueError, TypeError):
            session_logger.warning("Session token is missing or has malformed claims")
            raise AuthenticationException("Invalid session token.")

        if claims.purpose != required_purpose:
            session_logger.warning(
                f"Rejected {claims.purpose.value} session presented for "
                f"{required_purpose.value}"
            )
            raise SessionPurposeMismatchException()

        return claims


session_issuer = SessionIssuer()


__all__ = ["IssuedSession", "SessionClaims", "SessionIssuer", "session_issuer"]
