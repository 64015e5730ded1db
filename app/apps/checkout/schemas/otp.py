"""
Schemas for the guest checkout OTP endpoints.

"""

from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.enums import DeliveryChannel, PreferredChannel
from app.core.schemas import OTPCodeStr, PhoneStr


class CheckoutOTPRequest(BaseModel):
    """Request schema for issuing a checkout code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "phone": "+966501234567",
                "email": "guest@example.com",
                "prefer_email": False,
            }
        }
    )

    phone: PhoneStr | None = None
    email: Annotated[
        EmailStr | None, Field(description="Email address, used as fallback")
    ] = None
    prefer_email: Annotated[
        bool, Field(description="Try email before WhatsApp")
    ] = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.lower() if v else v


class CheckoutOTPVerifyRequest(BaseModel):
    """Request schema for verifying a checkout code."""

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
    phone: PhoneStr | None = None
    email: Annotated[EmailStr | None, Field(description="Email address")] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.lower() if v else v


class CheckoutOTPResendRequest(BaseModel):
    """Request schema for resending a checkout code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "phone": "+966501234567",
                "preferred_channel": "email",
                "email": "guest@example.com",
            }
        }
    )

    phone: PhoneStr
    preferred_channel: Annotated[
        PreferredChannel, Field(description="Channel to try first")
    ] = PreferredChannel.WHATSAPP
    email: Annotated[
        EmailStr | None, Field(description="Email address for delivery by email")
    ] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.lower() if v else v


class OTPIssuedResponse(BaseModel):
    """Response schema for an issued checkout code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "otp_id": "550e8400-e29b-41d4-a716-446655440000",
                "sent_via": "primary",
                "expires_in_seconds": 900,
                "masked_contact": "+966501***4567",
                "message": "Verification code sent via WhatsApp.",
            }
        }
    )

    otp_id: UUID
    sent_via: DeliveryChannel
    expires_in_seconds: int
    masked_contact: str
    message: str


class CheckoutSessionResponse(BaseModel):
    """Response schema for a verified checkout code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
                "expires_in_seconds": 86400,
                "subject_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
                "is_new_identity": True,
            }
        }
    )

    access_token: str
    token_type: str = "bearer"
    expires_in_seconds: int
    subject_id: UUID
    is_new_identity: bool


class ChannelStatusResponse(BaseModel):
    """Availability of the delivery channels."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "whatsapp": {"enabled": True, "connected": True},
                "email": {"enabled": True, "verified": True},
                "recommended": "whatsapp",
            }
        }
    )

    whatsapp: dict[str, Any]
    email: dict[str, Any]
    recommended: str | None = None


__all__ = [
    "CheckoutOTPRequest",
    "CheckoutOTPVerifyRequest",
    "CheckoutOTPResendRequest",
    "OTPIssuedResponse",
    "CheckoutSessionResponse",
    "ChannelStatusResponse",
]
