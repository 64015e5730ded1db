from fastapi import status

from app.core.enums import ErrorCode, SendFailureReason


class AppException(Exception):
    """Base application exception."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
        code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        self.details = details
        if code is not None:
            self.code = code
        super().__init__(message)


class DatabaseException(AppException):
    """Exception raised for database-related errors."""

    code = ErrorCode.DATABASE_ERROR

    def __init__(self, message: str = "A database error occurred."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class BadRequestException(AppException):
    """Exception raised for bad request errors."""

    code = ErrorCode.VALIDATION

    def __init__(self, message: str = "Bad request.", details: dict | None = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class MissingContactException(BadRequestException):
    """Raised when neither a phone number nor an email was supplied."""

    code = ErrorCode.MISSING_CONTACT_INFO

    def __init__(
        self, message: str = "Either a phone number or an email address is required."
    ):
        super().__init__(message)


class UnknownEmailException(BadRequestException):
    """Raised when a resend targets an email never linked to the phone."""

    code = ErrorCode.UNKNOWN_EMAIL

    def __init__(
        self,
        message: str = "This email address is not linked to the phone number.",
    ):
        super().__init__(message)


class ContactMismatchException(BadRequestException):
    """Raised when the submitted contact differs from the challenge target."""

    code = ErrorCode.CONTACT_MISMATCH

    def __init__(
        self, message: str = "The contact does not match this verification code."
    ):
        super().__init__(message)


class OTPExpiredException(BadRequestException):
    """Exception raised when OTP has expired."""

    code = ErrorCode.EXPIRED

    def __init__(self, message: str = "OTP has expired. Please request a new one."):
        super().__init__(message)


class OTPInvalidException(BadRequestException):
    """Exception raised when the submitted code is wrong."""

    code = ErrorCode.INVALID_CODE

    def __init__(
        self,
        message: str = "Invalid OTP code.",
        remaining_attempts: int | None = None,
    ):
        details = (
            {"remaining_attempts": remaining_attempts}
            if remaining_attempts is not None
            else None
        )
        super().__init__(message, details)
        self.remaining_attempts = remaining_attempts


class AuthenticationException(AppException):
    """Exception raised for authentication-related errors."""

    code = ErrorCode.INVALID_SESSION

    def __init__(self, message: str = "Authentication failed."):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenException(AppException):
    """Exception raised when access is forbidden."""

    def __init__(self, message: str = "Access forbidden."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class SessionPurposeMismatchException(ForbiddenException):
    """Raised when a valid session is presented for a different purpose."""

    code = ErrorCode.SESSION_PURPOSE_MISMATCH

    def __init__(
        self, message: str = "This session is not valid for the requested operation."
    ):
        super().__init__(message)


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class OTPNotFoundException(NotFoundException):
    """Raised when no challenge exists for the given id."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str = "Invalid or unknown OTP id."):
        super().__init__(message)


class NoRecordsFoundException(NotFoundException):
    """Raised when a tracking request targets a phone with no orders."""

    code = ErrorCode.NO_RECORDS_FOUND

    def __init__(self, message: str = "No orders found for this phone number."):
        super().__init__(message)


class RecordNotFoundException(NotFoundException):
    """Raised when a specific order number does not belong to the phone."""

    code = ErrorCode.RECORD_NOT_FOUND

    def __init__(
        self, message: str = "Order not found or does not belong to this phone number."
    ):
        super().__init__(message)


class ConflictException(AppException):
    """Exception raised when there's a conflict with existing resources."""

    def __init__(self, message: str = "Resource conflict."):
        super().__init__(message, status.HTTP_409_CONFLICT)


class OTPAlreadyUsedException(ConflictException):
    """Raised when a challenge has already been verified."""

    code = ErrorCode.ALREADY_USED

    def __init__(self, message: str = "This OTP has already been used."):
        super().__init__(message)


class TooManyAttemptsException(AppException):
    """Exception raised when too many OTP verification attempts."""

    code = ErrorCode.MAX_ATTEMPTS_EXCEEDED

    def __init__(self, message: str = "Too many attempts. Please request a new OTP."):
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)


class RateLimitExceededException(AppException):
    """Exception raised when rate limit is exceeded."""

    code = ErrorCode.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: int | None = None,
    ):
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS, details)
        self.retry_after = retry_after


class OTPSendFailedException(AppException):
    """Raised when a code could not be delivered on any channel."""

    code = ErrorCode.SEND_FAILED

    def __init__(
        self,
        message: str = "Failed to send the verification code.",
        reason: SendFailureReason = SendFailureReason.CHANNEL_ERROR,
        suggestion: str | None = None,
    ):
        details: dict = {"reason": reason.value}
        if suggestion:
            details["suggestion"] = suggestion
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, details)
        self.reason = reason
        self.suggestion = suggestion


__all__ = [
    "AppException",
    "DatabaseException",
    "BadRequestException",
    "MissingContactException",
    "UnknownEmailException",
    "ContactMismatchException",
    "OTPExpiredException",
    "OTPInvalidException",
    "AuthenticationException",
    "ForbiddenException",
    "SessionPurposeMismatchException",
    "NotFoundException",
    "OTPNotFoundException",
    "NoRecordsFoundException",
    "RecordNotFoundException",
    "ConflictException",
    "OTPAlreadyUsedException",
    "TooManyAttemptsException",
    "RateLimitExceededException",
    "OTPSendFailedException",
]
