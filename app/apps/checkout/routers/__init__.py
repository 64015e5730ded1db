"""
Routers for checkout.
"""

from app.apps.checkout.routers.otp import router as otp_router

__all__ = ["otp_router"]
