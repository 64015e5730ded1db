from enum import Enum


class OTPPurpose(str, Enum):
    """What a verified challenge is allowed to unlock."""

    CHECKOUT = "checkout"
    ORDER_TRACKING = "order_tracking"


class DeliveryChannel(str, Enum):
    """Channel that actually delivered a challenge code."""

    PRIMARY = "primary"  # WhatsApp
    SECONDARY = "secondary"  # Email
    NONE = "none"


class PreferredChannel(str, Enum):
    """Channel a client asks to be tried first on resend."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"


class ChallengeState(str, Enum):
    """Lifecycle state of an OTP challenge, derived from its stored fields."""

    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    SUPERSEDED = "superseded"


class IdentityKind(str, Enum):
    """Kind of identity a verified contact maps to."""

    GUEST = "guest"
    REGISTERED = "registered"


class SendFailureReason(str, Enum):
    """Why a code could not be delivered on any channel."""

    TIMEOUT = "timeout"
    NO_SECONDARY_CHANNEL = "no_secondary_channel"
    CHANNEL_ERROR = "channel_error"


class ErrorCode(str, Enum):
    """Machine-readable error codes returned alongside error messages."""

    VALIDATION = "VALIDATION"
    MISSING_CONTACT_INFO = "MISSING_CONTACT_INFO"
    RATE_LIMITED = "RATE_LIMITED"
    SEND_FAILED = "OTP_SEND_FAILED"
    NOT_FOUND = "INVALID_OTP_ID"
    NO_RECORDS_FOUND = "NO_ORDERS_FOUND"
    RECORD_NOT_FOUND = "ORDER_NOT_FOUND"
    CONTACT_MISMATCH = "CONTACT_MISMATCH"
    EXPIRED = "OTP_EXPIRED"
    ALREADY_USED = "OTP_ALREADY_USED"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"
    INVALID_CODE = "INVALID_OTP_CODE"
    UNKNOWN_EMAIL = "UNKNOWN_EMAIL"
    INVALID_SESSION = "INVALID_SESSION"
    SESSION_PURPOSE_MISMATCH = "SESSION_PURPOSE_MISMATCH"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
