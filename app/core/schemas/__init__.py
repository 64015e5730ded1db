"""
Shared schemas for API request validation and response serialization.

"""

from app.core.schemas.otp import (
    MessageResponse,
    OTPCodeStr,
    PhoneStr,
    SessionInfoResponse,
)

__all__ = [
    "MessageResponse",
    "OTPCodeStr",
    "PhoneStr",
    "SessionInfoResponse",
]
