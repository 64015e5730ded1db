from app.core.db.crud.base import BaseDB
from app.core.db.crud.guest_identity import GuestIdentityDB
from app.core.db.crud.order_record import OrderRecordDB
from app.core.db.crud.otp_challenge import OTPChallengeDB

# Global CRUD instances - use these instead of creating new instances
otp_challenge_db = OTPChallengeDB()
guest_identity_db = GuestIdentityDB()
order_record_db = OrderRecordDB()

__all__ = [
    "BaseDB",
    "GuestIdentityDB",
    "OrderRecordDB",
    "OTPChallengeDB",
    "otp_challenge_db",
    "guest_identity_db",
    "order_record_db",
]
