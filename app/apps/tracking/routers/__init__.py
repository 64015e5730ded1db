"""
Routers for order tracking.
"""

from app.apps.tracking.routers.tracking import router as tracking_router

__all__ = ["tracking_router"]
