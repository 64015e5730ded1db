from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.config import request_logger
from app.core.exceptions.types import (
    AppException,
    AuthenticationException,
    BadRequestException,
    ConflictException,
    DatabaseException,
    ForbiddenException,
    NotFoundException,
    OTPSendFailedException,
    RateLimitExceededException,
    TooManyAttemptsException,
)


def _error_content(exc: AppException, detail: str | None = None) -> dict:
    """Build the JSON error body shared by every handler."""
    content = {"detail": detail or exc.message, "code": exc.code.value}
    if exc.details:
        content.update(exc.details)
    return content


async def general_exception_handler(request: Request, exc: AppException):
    """
    Handles general exceptions by returning a JSON response with the error message.

    Args:
        request: The request object.
        exc (AppException): The exception instance.

    Returns:
        JSONResponse: A response containing the error message and the exception status code.
    """
    request_logger.error(f"GeneralException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(exc),
    )


async def database_exception_handler(request: Request, exc: DatabaseException):
    """
    Handles database exceptions without leaking storage internals to the client.

    Args:
        request: The request object.
        exc (DatabaseException): The database exception instance.

    Returns:
        JSONResponse: A response with a generic message and status code 500.
    """
    request_logger.error(f"DatabaseException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": "A database error occurred.", "code": exc.code.value},
    )


async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
):
    """
    Handles authentication exceptions by returning a JSON response.

    Args:
        request: The request object.
        exc (AuthenticationException): The authentication exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code 401.
    """
    request_logger.warning(f"AuthenticationException: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    """Handles forbidden exceptions (status code 403)."""
    request_logger.warning(f"ForbiddenException: {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_content(exc))


async def bad_request_exception_handler(request: Request, exc: BadRequestException):
    """
    Handles bad request exceptions, including every OTP verification failure
    that maps to status code 400.

    Args:
        request: The request object.
        exc (BadRequestException): The bad request exception instance.

    Returns:
        JSONResponse: A response containing the error message, code and details.
    """
    request_logger.warning(f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_content(exc))


async def not_found_exception_handler(request: Request, exc: NotFoundException):
    """Handles not found exceptions (status code 404)."""
    request_logger.warning(f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_content(exc))


async def conflict_exception_handler(request: Request, exc: ConflictException):
    """Handles conflict exceptions (status code 409)."""
    request_logger.warning(f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_content(exc))


async def too_many_attempts_exception_handler(
    request: Request, exc: TooManyAttemptsException
):
    """
    Handles too many attempts exceptions by returning a JSON response.

    Args:
        request: The request object.
        exc (TooManyAttemptsException): The too many attempts exception instance.

    Returns:
        JSONResponse: A response containing the error message and status code 429.
    """
    request_logger.warning(f"TooManyAttemptsException: {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_content(exc))


async def rate_limit_exception_handler(
    request: Request, exc: RateLimitExceededException
):
    """
    Handles rate limit exceeded exceptions by returning a JSON response.

    Args:
        request: The request object.
        exc (RateLimitExceededException): The rate limit exception instance.

    Returns:
        JSONResponse: A response with status code 429 and optional Retry-After header.
    """
    request_logger.warning(f"RateLimitExceededException: {exc}")
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(exc),
        headers=headers,
    )


async def send_failed_exception_handler(
    request: Request, exc: OTPSendFailedException
):
    """
    Handles delivery failures, passing the failure reason and a user-facing
    suggestion through to the client.
    """
    request_logger.error(f"OTPSendFailedException ({exc.reason.value}): {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_content(exc))


exception_schema = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "description": "Internal Server Error",
        "content": {
            "application/json": {
                "example": {
                    "detail": "A database error occurred.",
                    "code": "DATABASE_ERROR",
                },
            }
        },
    },
    status.HTTP_429_TOO_MANY_REQUESTS: {
        "description": "Rate Limit Exceeded",
        "content": {
            "application/json": {
                "example": {
                    "detail": "Too many OTP requests. Try again in 900 seconds.",
                    "code": "RATE_LIMITED",
                    "retry_after": 900,
                },
            }
        },
    },
}


__all__ = [
    "general_exception_handler",
    "database_exception_handler",
    "authentication_exception_handler",
    "forbidden_exception_handler",
    "bad_request_exception_handler",
    "not_found_exception_handler",
    "conflict_exception_handler",
    "too_many_attempts_exception_handler",
    "rate_limit_exception_handler",
    "send_failed_exception_handler",
    "exception_schema",
]
