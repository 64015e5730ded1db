"""
Order tracking router.

This module provides endpoints for:
- Requesting and verifying an order tracking code
- Listing and reading orders inside a tracking session
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.apps.tracking.schemas import (
    OrderListResponse,
    OrderSummaryResponse,
    TrackingOTPIssuedResponse,
    TrackingOTPRequest,
    TrackingOTPVerifyRequest,
    TrackingSessionResponse,
)
from app.apps.tracking.services import status_label, tracking_otp_service
from app.core.config import request_logger
from app.core.db.models import OrderRecord
from app.core.dependencies import TrackingSession, get_async_session
from app.core.exceptions.handlers import exception_schema
from app.core.utils import mask_phone


router = APIRouter(prefix="/tracking")


def _order_summary(order: OrderRecord) -> OrderSummaryResponse:
    return OrderSummaryResponse(
        order_number=order.order_number,
        status=order.status,
        status_label=status_label(order.status),
        total=order.total,
        currency=order.currency,
        created_at=order.created_at,
    )


@router.post(
    "/otp/request",
    response_model=TrackingOTPIssuedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request tracking code",
    description="""
## Request Order Tracking Code

Send a 6-digit code to a phone number that has orders on record.

### Request Body

| Field | Type | Required | Description |
|-------|------|----------|-------------|
| `phone` | string | ✅ | Phone number in E.164 format |
| `order_number` | string | ❌ | Order that must belong to the phone |

### Response

| Field | Type | Description |
|-------|------|-------------|
| `otp_id` | UUID | Handle to submit with the code |
| `sent_via` | string | Channel that delivered the code |
| `expires_in_seconds` | integer | Code lifetime (10 minutes) |
| `related_record_count` | integer | Number of orders for the phone |

### Errors

| Code | Status | Meaning |
|------|--------|---------|
| `NO_ORDERS_FOUND` | 404 | The phone has no orders |
| `ORDER_NOT_FOUND` | 404 | `order_number` does not belong to the phone |
""",
    responses={
        503: {"description": "The code could not be delivered"},
        **exception_schema,
    },
)
async def request_tracking_otp(
    data: TrackingOTPRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> TrackingOTPIssuedResponse:
    """Issue an order tracking code."""
    request_logger.info(f"POST /tracking/otp/request - phone={mask_phone(data.phone)}")
    result = await tracking_otp_service.request_otp(
        session, phone=data.phone, order_number=data.order_number
    )
    return TrackingOTPIssuedResponse(
        otp_id=result.issued.challenge.id,
        sent_via=result.issued.sent_via,
        expires_in_seconds=result.issued.expires_in,
        related_record_count=result.record_count,
        masked_contact=mask_phone(data.phone),
    )


@router.post(
    "/otp/verify",
    response_model=TrackingSessionResponse,
    summary="Verify tracking code",
    description="""
## Verify Order Tracking Code

Exchange a valid code for a read-only tracking session. The response also
lists the phone's orders, newest first.

### Notes

- Tracking sessions last 30 minutes
- A tracking session cannot be used for checkout
""",
    responses={**exception_schema},
)
async def verify_tracking_otp(
    data: TrackingOTPVerifyRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> TrackingSessionResponse:
    """Verify an order tracking code."""
    request_logger.info(f"POST /tracking/otp/verify - otp_id={data.otp_id}")
    result = await tracking_otp_service.verify_otp(
        session, otp_id=data.otp_id, code=data.code, phone=data.phone
    )
    return TrackingSessionResponse(
        access_token=result.session.access_token,
        token_type=result.session.token_type,
        expires_in_seconds=result.session.expires_in,
        orders=[_order_summary(o) for o in result.orders],
    )


@router.get(
    "/orders",
    response_model=OrderListResponse,
    summary="List tracked orders",
    description="""
## List Tracked Orders

List the orders of the phone verified for this tracking session.

### Authorization

- Requires an **order tracking** session. Checkout sessions are rejected with 403.
""",
)
async def list_tracked_orders(
    claims: TrackingSession,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> OrderListResponse:
    """List the session phone's orders."""
    orders = await tracking_otp_service.list_orders(session, claims.contact)
    return OrderListResponse(
        orders=[_order_summary(o) for o in orders], count=len(orders)
    )


@router.get(
    "/orders/{order_number}",
    response_model=OrderSummaryResponse,
    summary="Get tracked order",
    description="""
## Get Tracked Order

Read one order of the phone verified for this tracking session. Orders of
other phones are reported as not found.
""",
)
async def get_tracked_order(
    claims: TrackingSession,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    order_number: Annotated[str, Path(min_length=1, max_length=64)],
) -> OrderSummaryResponse:
    """Get one of the session phone's orders."""
    order = await tracking_otp_service.get_order(session, order_number, claims.contact)
    return _order_summary(order)
