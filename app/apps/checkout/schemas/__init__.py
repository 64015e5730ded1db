"""
Schemas for checkout.
"""

from app.apps.checkout.schemas.otp import (
    ChannelStatusResponse,
    CheckoutOTPRequest,
    CheckoutOTPResendRequest,
    CheckoutOTPVerifyRequest,
    CheckoutSessionResponse,
    OTPIssuedResponse,
)

__all__ = [
    "ChannelStatusResponse",
    "CheckoutOTPRequest",
    "CheckoutOTPResendRequest",
    "CheckoutOTPVerifyRequest",
    "CheckoutSessionResponse",
    "OTPIssuedResponse",
]
