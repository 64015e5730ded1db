"""
Session dependencies for FastAPI endpoints.

Each protected route names the purpose it accepts. A token minted for
another purpose is rejected with 403 even when its signature is valid.

Example usage:
    from app.core.dependencies.session import CheckoutSession

    @router.post("/orders")
    async def place_order(claims: CheckoutSession):
        return {"subject": str(claims.subject_id)}
"""

from typing import Annotated, Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.enums import OTPPurpose
from app.core.exceptions.types import AuthenticationException
from app.core.services.session import SessionClaims, session_issuer

# auto_error=False so a missing header goes through our 401 handler
bearer_scheme = HTTPBearer(auto_error=False)


def require_session(
    purpose: OTPPurpose,
) -> Callable[[HTTPAuthorizationCredentials | None], SessionClaims]:
    """
    Build a dependency that accepts only sessions issued for `purpose`.

    Raises (from the returned dependency):
        AuthenticationException: 401 if the token is missing, invalid or expired.
        SessionPurposeMismatchException: 403 if the token has another purpose.
    """

    def dependency(
        credentials: Annotated[
            HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
        ],
    ) -> SessionClaims:
        if credentials is None:
            raise AuthenticationException("Missing session token.")
        return session_issuer.verify(credentials.credentials, purpose)

    return dependency


get_checkout_session = require_session(OTPPurpose.CHECKOUT)
get_tracking_session = require_session(OTPPurpose.ORDER_TRACKING)

# Type aliases for cleaner route signatures
CheckoutSession = Annotated[SessionClaims, Depends(get_checkout_session)]
TrackingSession = Annotated[SessionClaims, Depends(get_tracking_session)]


__all__ = [
    "bearer_scheme",
    "require_session",
    "get_checkout_session",
    "get_tracking_session",
    "CheckoutSession",
    "TrackingSession",
]
