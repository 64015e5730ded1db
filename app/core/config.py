from functools import lru_cache
import logging
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.logger import setup_logger, init_sentry


class Settings(BaseSettings):
    # Application settings
    ENVIRONMENT: str = "development"  # Options: development, production, test
    API_DOMAIN: str = "http://localhost:8000"
    APP_NAME: str = "OTP Gate"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = """
OTP Gate issues short-lived, single-use verification codes to unauthenticated
visitors and exchanges a verified code for a purpose-scoped bearer session.

## Flows

- **Guest checkout**: verify a phone or email before placing an order.
- **Order tracking**: verify a phone number that has orders on record and browse them read-only.

## Key Capabilities

| Area | Description |
|------|-------------|
| **Challenges** | 6-digit codes stored as bcrypt hashes, purpose-scoped expiry, one active challenge per contact and purpose. |
| **Delivery** | WhatsApp first with a bounded deadline, Brevo email as fallback, late deliveries recorded in the background. |
| **Abuse control** | Sliding-window request limits per contact and a hard cap on verification attempts. |
| **Sessions** | Stateless JWTs carrying a `purpose` claim; a tracking session cannot be used for checkout. |

## Authentication

Session endpoints require a **Bearer JWT** returned by one of the `/otp/verify` endpoints.
"""
    DEBUG: bool = False

    # CORS settings
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_ALLOW_CREDENTIALS: bool = True

    # Session (JWT) settings
    JWT_SECRET_KEY: str = "another_supersecret_key"
    JWT_ALGORITHM: str = "HS256"
    CHECKOUT_SESSION_TTL_MINUTES: int = 24 * 60
    TRACKING_SESSION_TTL_MINUTES: int = 30

    # Database settings
    DATABASE_URL: str
    TEST_DATABASE_URL: str = "sqlite+aiosqlite://"

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate limiting settings
    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"
    OTP_RATE_LIMIT_WINDOW_MINUTES: int = 15
    OTP_RATE_LIMIT_MAX_REQUESTS: int = 3
    OTP_RESEND_EXTRA_REQUESTS: int = 2

    # OTP settings
    OTP_LENGTH: int = 6
    OTP_MAX_ATTEMPTS: int = 3
    OTP_CHECKOUT_EXPIRY_MINUTES: int = 15
    OTP_TRACKING_EXPIRY_MINUTES: int = 10
    OTP_BCRYPT_ROUNDS: int = 10
    OTP_PRIMARY_DEADLINE_SECONDS: float = 15.0
    # Wall-clock cap for one delivery, fallback leg included
    OTP_DELIVERY_BUDGET_SECONDS: float = 20.0
    OTP_RETENTION_DAYS: int = 1
    # When enabled, a resend may only target an email already linked to the phone
    OTP_RESEND_REQUIRE_KNOWN_EMAIL: bool = False

    # WhatsApp settings
    WHATSAPP_API_URL: str = ""
    WHATSAPP_SESSION_ID: str = ""
    WHATSAPP_ACCESS_TOKEN: str = ""
    WHATSAPP_TIMEOUT_SECONDS: float = 45.0

    # Brevo settings
    BREVO_API_KEY: str = "your_brevo_api_key"
    BREVO_BASE_URL: str = "https://api.brevo.com/v3"
    BREVO_SENDER_EMAIL: str = "your_brevo_sender_email"
    BREVO_SENDER_NAME: str = "your_brevo_sender_name"

    # Infrastructure flags (for Docker separation)
    ENABLE_SCHEDULER: bool = True

    # Sentry settings
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config: SettingsConfigDict = SettingsConfigDict(  # type: ignore
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_production_secrets(self) -> "Settings":
        """Ensure insecure default secrets are overridden in production."""
        if self.ENVIRONMENT != "production":
            return self

        insecure_defaults: dict[str, str] = {
            "JWT_SECRET_KEY": "another_supersecret_key",
            "BREVO_API_KEY": "your_brevo_api_key",
        }

        still_default = [
            name
            for name, default_val in insecure_defaults.items()
            if getattr(self, name) == default_val
        ]

        if still_default:
            raise ValueError(
                f"ENVIRONMENT is 'production' but the following secrets still "
                f"have their insecure default values: {', '.join(still_default)}. "
                f"Set them via environment variables or .env file."
            )

        return self

    @property
    def resend_max_requests(self) -> int:
        """Request ceiling applied to resends within the same window."""
        return self.OTP_RATE_LIMIT_MAX_REQUESTS + self.OTP_RESEND_EXTRA_REQUESTS


@lru_cache()
def get_settings() -> Settings:
    return Settings()  # type: ignore


settings = get_settings()

# Initialize Sentry once globally (non-blocking, runs in background threads)
if not settings.DEBUG:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

# One logger per component, each with its own file and Sentry tag
app_logger = setup_logger(
    name="app_logger",
    log_file="logs/app.log",
    level=logging.INFO,
    sentry_tag="app",
)
database_logger = setup_logger(
    name="database_logger",
    log_file="logs/database.log",
    level=logging.INFO,
    sentry_tag="database",
)
request_logger = setup_logger(
    name="request_logger",
    log_file="logs/requests.log",
    level=logging.INFO,
    sentry_tag="request",
)
otp_logger = setup_logger(
    name="otp_logger",
    log_file="logs/otp.log",
    level=logging.INFO,
    sentry_tag="otp",
)
delivery_logger = setup_logger(
    name="delivery_logger",
    log_file="logs/delivery.log",
    level=logging.INFO,
    sentry_tag="delivery",
)
session_logger = setup_logger(
    name="session_logger",
    log_file="logs/session.log",
    level=logging.INFO,
    sentry_tag="session",
)
whatsapp_logger = setup_logger(
    name="whatsapp_logger",
    log_file="logs/whatsapp.log",
    level=logging.INFO,
    sentry_tag="whatsapp",
)
brevo_logger = setup_logger(
    name="brevo_logger",
    log_file="logs/brevo.log",
    level=logging.INFO,
    sentry_tag="email",
)
scheduler_logger = setup_logger(
    name="scheduler_logger",
    log_file="logs/scheduler.log",
    level=logging.INFO,
    sentry_tag="scheduler",
)
utils_logger = setup_logger(
    name="utils_logger",
    log_file="logs/utils.log",
    level=logging.INFO,
    sentry_tag="utils",
)
redis_logger = setup_logger(
    name="redis_logger",
    log_file="logs/redis.log",
    level=logging.INFO,
    sentry_tag="redis",
)
rate_limit_logger = setup_logger(
    name="rate_limit_logger",
    log_file="logs/rate_limit.log",
    level=logging.INFO,
    sentry_tag="rate_limit",
)

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "app_logger",
    "database_logger",
    "request_logger",
    "otp_logger",
    "delivery_logger",
    "session_logger",
    "whatsapp_logger",
    "brevo_logger",
    "scheduler_logger",
    "utils_logger",
    "redis_logger",
    "rate_limit_logger",
]
