"""
Guest checkout OTP router.

This module provides endpoints for:
- Requesting and resending a checkout verification code
- Verifying the code in exchange for a checkout session
- Inspecting delivery channel availability and the current session
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.apps.checkout.schemas import (
    ChannelStatusResponse,
    CheckoutOTPRequest,
    CheckoutOTPResendRequest,
    CheckoutOTPVerifyRequest,
    CheckoutSessionResponse,
    OTPIssuedResponse,
)
from app.apps.checkout.services import (
    checkout_otp_service,
    delivered_to,
    sent_message,
)
from app.core.config import request_logger
from app.core.dependencies import CheckoutSession, get_async_session
from app.core.exceptions.handlers import exception_schema
from app.core.schemas import SessionInfoResponse
from app.core.services.delivery import channel_orchestrator
from app.core.services.challenge import IssuedChallenge
from app.core.utils import mask_contact


router = APIRouter(prefix="/checkout")


def _issued_response(issued: IssuedChallenge) -> OTPIssuedResponse:
    return OTPIssuedResponse(
        otp_id=issued.challenge.id,
        sent_via=issued.sent_via,
        expires_in_seconds=issued.expires_in,
        masked_contact=delivered_to(issued),
        message=sent_message(issued),
    )


@router.post(
    "/otp/request",
    response_model=OTPIssuedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request checkout code",
    description="""
## Request Checkout Verification Code

Send a 6-digit code to a guest before checkout.

### Request Body

| Field | Type | Required | Description |
|-------|------|----------|-------------|
| `phone` | string | ❌ | Phone number in E.164 format |
| `email` | string | ❌ | Email address, used as fallback |
| `prefer_email` | boolean | ❌ | Try email before WhatsApp |

At least one of `phone` or `email` is required. The phone is the
verification target when both are given.

### Delivery

1. WhatsApp is tried first and given a bounded amount of time
2. If it fails or is too slow and an email is present, the code is emailed
3. A slow WhatsApp message may still arrive later

### Response

| Field | Type | Description |
|-------|------|-------------|
| `otp_id` | UUID | Handle to submit with the code |
| `sent_via` | string | `primary` (WhatsApp) or `secondary` (email) |
| `expires_in_seconds` | integer | Code lifetime |
| `masked_contact` | string | Where the code was sent, masked |

### Notes

- Requesting a new code invalidates the previous one
- Limited to 3 codes per contact every 15 minutes
""",
    responses={
        400: {"description": "No phone or email supplied"},
        503: {"description": "No channel could deliver the code"},
        **exception_schema,
    },
)
async def request_checkout_otp(
    data: CheckoutOTPRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> OTPIssuedResponse:
    """Issue a checkout verification code."""
    request_logger.info(
        f"POST /checkout/otp/request - contact={mask_contact(data.phone or data.email or '')}"
    )
    issued = await checkout_otp_service.request_otp(
        session,
        phone=data.phone,
        email=data.email,
        prefer_email=data.prefer_email,
    )
    return _issued_response(issued)


@router.post(
    "/otp/resend",
    response_model=OTPIssuedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Resend checkout code",
    description="""
## Resend Checkout Verification Code

Issue a fresh code for a phone number, optionally asking for email delivery.

### Request Body

| Field | Type | Required | Description |
|-------|------|----------|-------------|
| `phone` | string | ✅ | Phone number in E.164 format |
| `preferred_channel` | string | ❌ | `whatsapp` (default) or `email` |
| `email` | string | ❌ | Email address for email delivery |

### Notes

- The previous code for this phone stops working
- Resends have a slightly higher limit (5 per 15 minutes)
- When no email is supplied, an email already linked to the phone is used
""",
    responses={
        400: {"description": "Email delivery requested without an email"},
        503: {"description": "No channel could deliver the code"},
        **exception_schema,
    },
)
async def resend_checkout_otp(
    data: CheckoutOTPResendRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> OTPIssuedResponse:
    """Resend a checkout verification code."""
    request_logger.info(
        f"POST /checkout/otp/resend - phone={mask_contact(data.phone)} "
        f"channel={data.preferred_channel.value}"
    )
    issued = await checkout_otp_service.resend_otp(
        session,
        phone=data.phone,
        preferred_channel=data.preferred_channel,
        email=data.email,
    )
    return _issued_response(issued)


@router.post(
    "/otp/verify",
    response_model=CheckoutSessionResponse,
    summary="Verify checkout code",
    description="""
## Verify Checkout Code

Exchange a valid code for a checkout session.

### Request Body

| Field | Type | Required | Description |
|-------|------|----------|-------------|
| `otp_id` | UUID | ✅ | Handle returned by `/otp/request` |
| `code` | string | ✅ | The 6-digit code |
| `phone` | string | ❌ | Phone the code was requested for |
| `email` | string | ❌ | Email the code was requested for |

### Response

| Field | Type | Description |
|-------|------|-------------|
| `access_token` | string | Bearer token scoped to checkout |
| `expires_in_seconds` | integer | Session lifetime |
| `subject_id` | UUID | Guest identity of the verified contact |
| `is_new_identity` | boolean | Whether the identity was created now |

### Errors

| Code | Status | Meaning |
|------|--------|---------|
| `INVALID_OTP_ID` | 404 | Unknown `otp_id` |
| `CONTACT_MISMATCH` | 400 | Contact differs from the request |
| `OTP_EXPIRED` | 400 | Code expired or replaced by a newer one |
| `OTP_ALREADY_USED` | 409 | Code already verified |
| `MAX_ATTEMPTS_EXCEEDED` | 429 | No attempts left |
| `INVALID_OTP_CODE` | 400 | Wrong code, with `remaining_attempts` |
""",
    responses={**exception_schema},
)
async def verify_checkout_otp(
    data: CheckoutOTPVerifyRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> CheckoutSessionResponse:
    """Verify a checkout code."""
    request_logger.info(f"POST /checkout/otp/verify - otp_id={data.otp_id}")
    result = await checkout_otp_service.verify_otp(
        session,
        otp_id=data.otp_id,
        code=data.code,
        phone=data.phone,
        email=data.email,
    )
    return CheckoutSessionResponse(
        access_token=result.session.access_token,
        token_type=result.session.token_type,
        expires_in_seconds=result.session.expires_in,
        subject_id=result.resolved.identity.id,
        is_new_identity=result.resolved.is_new,
    )


@router.get(
    "/otp/services",
    response_model=ChannelStatusResponse,
    summary="Delivery channel status",
    description="""
## Delivery Channel Status

Report whether WhatsApp and email delivery are currently available, and
which one the client should suggest to the user.
""",
)
async def checkout_channel_status() -> ChannelStatusResponse:
    """Report channel availability."""
    status_report = await channel_orchestrator.channel_status()
    return ChannelStatusResponse(**status_report)


@router.get(
    "/session",
    response_model=SessionInfoResponse,
    summary="Current checkout session",
    description="""
## Current Checkout Session

Return the claims of the checkout session in the `Authorization` header.

### Authorization

- Requires a **checkout** session. Order tracking sessions are rejected with 403.
""",
)
async def get_checkout_session(claims: CheckoutSession) -> SessionInfoResponse:
    """Return the current checkout session."""
    return SessionInfoResponse(
        subject_id=claims.subject_id,
        purpose=claims.purpose,
        contact=claims.contact,
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
    )
