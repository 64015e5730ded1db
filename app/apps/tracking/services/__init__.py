"""
Services for order tracking.
"""

from app.apps.tracking.services.tracking import (
    TrackingOTPService,
    TrackingRequest,
    TrackingVerification,
    status_label,
    tracking_otp_service,
)

__all__ = [
    "TrackingOTPService",
    "TrackingRequest",
    "TrackingVerification",
    "status_label",
    "tracking_otp_service",
]
