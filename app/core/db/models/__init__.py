from app.core.db.models.guest_identity import GuestIdentity
from app.core.db.models.order_record import OrderRecord
from app.core.db.models.otp_challenge import OTPChallenge

__all__ = [
    "GuestIdentity",
    "OrderRecord",
    "OTPChallenge",
]
