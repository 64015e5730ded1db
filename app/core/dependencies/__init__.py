"""
Shared dependencies for FastAPI endpoints.

"""

from app.core.dependencies.db import get_async_session
from app.core.dependencies.session import (
    CheckoutSession,
    TrackingSession,
    bearer_scheme,
    get_checkout_session,
    get_tracking_session,
    require_session,
)

__all__ = [
    "get_async_session",
    "bearer_scheme",
    "require_session",
    "get_checkout_session",
    "get_tracking_session",
    # Type aliases
    "CheckoutSession",
    "TrackingSession",
]
