"""
Schemas for order tracking.
"""

from app.apps.tracking.schemas.tracking import (
    OrderListResponse,
    OrderSummaryResponse,
    TrackingOTPIssuedResponse,
    TrackingOTPRequest,
    TrackingOTPVerifyRequest,
    TrackingSessionResponse,
)

__all__ = [
    "OrderListResponse",
    "OrderSummaryResponse",
    "TrackingOTPIssuedResponse",
    "TrackingOTPRequest",
    "TrackingOTPVerifyRequest",
    "TrackingSessionResponse",
]
