"""
Shared schemas for the OTP flows.

- Field types for phone numbers and codes
- Session introspection response
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from app.core.enums import OTPPurpose

# E.164 phone number
PhoneStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"^\+\d{8,15}$"),
    Field(description="Phone number in E.164 format, e.g. +966501234567"),
]

# OTP code with pattern validation
OTPCodeStr = Annotated[
    str,
    StringConstraints(min_length=6, max_length=6, pattern=r"^\d{6}$"),
    Field(description="6-digit verification code"),
]


class MessageResponse(BaseModel):
    """Generic message response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"message": "Operation completed successfully", "success": True}
        }
    )

    message: str
    success: bool = True


class SessionInfoResponse(BaseModel):
    """Claims of the session presented with the request."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "subject_id": "550e8400-e29b-41d4-a716-446655440000",
                "purpose": "checkout",
                "contact": "+966501234567",
                "issued_at": "2025-01-01T12:00:00Z",
                "expires_at": "2025-01-02T12:00:00Z",
            }
        }
    )

    subject_id: Annotated[UUID, Field(description="Identity the session belongs to")]
    purpose: Annotated[OTPPurpose, Field(description="What the session may authorize")]
    contact: Annotated[str, Field(description="Verified phone or email")]
    issued_at: datetime
    expires_at: datetime


__all__ = ["PhoneStr", "OTPCodeStr", "MessageResponse", "SessionInfoResponse"]
