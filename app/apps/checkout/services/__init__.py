"""
Services for checkout.
"""

from app.apps.checkout.services.otp import (
    CheckoutOTPService,
    CheckoutVerification,
    checkout_otp_service,
    delivered_to,
    sent_message,
)

__all__ = [
    "CheckoutOTPService",
    "CheckoutVerification",
    "checkout_otp_service",
    "delivered_to",
    "sent_message",
]
