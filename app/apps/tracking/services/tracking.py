"""
Order tracking service.

Codes are only issued to phones that have orders on record. A verified code
opens a short read-only tracking session over those orders.
"""

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import otp_logger
from app.core.db.crud import guest_identity_db, order_record_db
from app.core.db.models import OrderRecord
from app.core.enums import OTPPurpose
from app.core.exceptions.types import NoRecordsFoundException, RecordNotFoundException
from app.core.services.challenge import (
    ChallengeService,
    IssuedChallenge,
    challenge_service,
)
from app.core.services.identity import IdentityResolver, identity_resolver
from app.core.services.session import IssuedSession, SessionIssuer, session_issuer
from app.core.services.verification import VerificationEngine, verification_engine
from app.core.utils import mask_phone


STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "out_for_delivery": "Out for delivery",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
    "refunded": "Refunded",
}


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status.replace("_", " ").capitalize())


@dataclass
class TrackingRequest:
    issued: IssuedChallenge
    record_count: int


@dataclass
class TrackingVerification:
    session: IssuedSession
    orders: Sequence[OrderRecord]


class TrackingOTPService:
    """Service for the order tracking OTP flow."""

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
        phone: str,
        order_number: str | None = None,
    ) -> TrackingRequest:
        """
        Issue a tracking code to a phone that has orders.

        Raises:
            NoRecordsFoundException: The phone has no orders.
            RecordNotFoundException: `order_number` does not belong to the phone.
            RateLimitExceededException: Too many codes for this phone.
            OTPSendFailedException: The code could not be delivered.
        """
        count = await order_record_db.count_for_phone(session, phone)
        if count == 0:
            otp_logger.info(f"Tracking code refused for {mask_phone(phone)}: no orders")
            raise NoRecordsFoundException()

        if order_number:
            order = await order_record_db.get_for_phone(session, order_number, phone)
            if order is None:
                raise RecordNotFoundException()

        identity = await guest_identity_db.get_by_phone(session, phone)
        issued = await self.challenges.issue(
            session,
            OTPPurpose.ORDER_TRACKING,
            phone,
            phone=phone,
            related_identity_id=identity.id if identity else None,
        )
        return TrackingRequest(issued=issued, record_count=count)

    async def verify_otp(
        self,
        session: AsyncSession,
        otp_id: UUID,
        code: str,
        phone: str,
    ) -> TrackingVerification:
        """Verify a tracking code and open a tracking session."""
        verified = await self.engine.verify(
            session, otp_id, code, phone, purpose=OTPPurpose.ORDER_TRACKING
        )
        resolved = await self.resolver.resolve(
            session, verified.contact_key, OTPPurpose.ORDER_TRACKING
        )
        issued = self.issuer.issue(
            resolved.identity.id, OTPPurpose.ORDER_TRACKING, verified.contact_key
        )
        orders = await self.list_orders(session, verified.contact_key)
        return TrackingVerification(session=issued, orders=orders)

    async def list_orders(
        self, session: AsyncSession, phone: str
    ) -> Sequence[OrderRecord]:
        return await order_record_db.list_for_phone(session, phone)

    async def get_order(
        self, session: AsyncSession, order_number: str, phone: str
    ) -> OrderRecord:
        """
        Fetch one order of the phone.

        Raises:
            RecordNotFoundException: The order does not exist or is not this phone's.
        """
        order = await order_record_db.get_for_phone(session, order_number, phone)
        if order is None:
            raise RecordNotFoundException()
        return order


tracking_otp_service = TrackingOTPService()


__all__ = [
    "TrackingOTPService",
    "TrackingRequest",
    "TrackingVerification",
    "tracking_otp_service",
    "status_label",
]
