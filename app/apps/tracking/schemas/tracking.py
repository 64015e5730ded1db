"""
Schemas for the order tracking endpoints.

"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from app.core.enums import DeliveryChannel
from app.core.schemas import OTPCodeStr, PhoneStr


class TrackingOTPRequest(BaseModel):
    """Request schema for issuing an order tracking code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"phone": "+966501234567", "order_number": "ORD-100234"}
        }
    )

    phone: PhoneStr
    order_number: Annotated[
        str | None,
        StringConstraints(min_length=1, max_length=64, strip_whitespace=True),
        Field(description="Optional order that must belong to the phone"),
    ] = None


class TrackingOTPVerifyRequest(BaseModel):
    """Request schema for verifying an order tracking code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "otp_id": "550e8400-e29b-41d4-a716-446655440000",
                "code": "123456",
                "phone": "+966501234567",
            }
        }
    )

    otp_id: Annotated[UUID, Field(description="Challenge id returned on request")]
    code: OTPCodeStr
    phone: PhoneStr


class TrackingOTPIssuedResponse(BaseModel):
    """Response schema for an issued order tracking code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "otp_id": "550e8400-e29b-41d4-a716-446655440000",
                "sent_via": "primary",
                "expires_in_seconds": 600,
                "related_record_count": 2,
                "masked_contact": "+966501***4567",
            }
        }
    )

    otp_id: UUID
    sent_via: DeliveryChannel
    expires_in_seconds: int
    related_record_count: int
    masked_contact: str


class OrderSummaryResponse(BaseModel):
    """One order visible in a tracking session."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "order_number": "ORD-100234",
                "status": "shipped",
                "status_label": "Shipped",
                "total": "149.90",
                "currency": "SAR",
                "created_at": "2025-01-01T12:00:00Z",
            }
        },
    )

    order_number: str
    status: str
    status_label: str
    total: Decimal
    currency: str
    created_at: datetime


class TrackingSessionResponse(BaseModel):
    """Response schema for a verified order tracking code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
                "expires_in_seconds": 1800,
                "orders": [],
            }
        }
    )

    access_token: str
    token_type: str = "bearer"
    expires_in_seconds: int
    orders: list[OrderSummaryResponse] = []


class OrderListResponse(BaseModel):
    """Orders of the phone behind the tracking session."""

    orders: list[OrderSummaryResponse]
    count: int


__all__ = [
    "TrackingOTPRequest",
    "TrackingOTPVerifyRequest",
    "TrackingOTPIssuedResponse",
    "OrderSummaryResponse",
    "TrackingSessionResponse",
    "OrderListResponse",
]
