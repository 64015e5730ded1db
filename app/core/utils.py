"""
Utility functions for the application.

- Numeric OTP code generation from a cryptographic source
- bcrypt hashing and constant-time verification of OTP codes
- Contact masking for responses and log lines
- JWT token creation and decoding
- OpenAPI schema export
"""

from datetime import datetime, timedelta, timezone
import json
import secrets
from typing import Any
import uuid

import aiofiles
import bcrypt
from fastapi import FastAPI
import jwt

from app.core.config import settings, utils_logger


def generate_otp_code(length: int | None = None) -> str:
    """
    Generate a numeric OTP code with no leading zero.

    The code is drawn uniformly from [10^(n-1), 10^n) using the `secrets`
    module, so a 6-digit code is always between 100000 and 999999.

    Args:
        length: Number of digits. Defaults to settings.OTP_LENGTH.

    Returns:
        The code as a string of exactly `length` digits.

    Examples:
        >>> code = generate_otp_code()
        >>> len(code), code[0] != "0"
        (6, True)
    """
    length = length or settings.OTP_LENGTH
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def hash_otp_code(code: str, rounds: int | None = None) -> str:
    """
    Hash an OTP code with bcrypt.

    Args:
        code: The plaintext code.
        rounds: bcrypt cost factor. Defaults to settings.OTP_BCRYPT_ROUNDS.

    Returns:
        str: The 60-character bcrypt hash.

    Raises:
        ValueError: If code is empty.
    """
    if not code:
        raise ValueError("OTP code cannot be empty")

    salt = bcrypt.gensalt(rounds=rounds or settings.OTP_BCRYPT_ROUNDS)
    return bcrypt.hashpw(code.encode("utf-8"), salt).decode("utf-8")


def verify_otp_code(code: str | None, code_hash: str | None) -> bool:
    """
    Compare a submitted code against a stored bcrypt hash in constant time.

    Any failure during the comparison (malformed hash, bad encoding) counts
    as a mismatch.

    Examples:
        >>> h = hash_otp_code("123456", rounds=4)
        >>> verify_otp_code("123456", h), verify_otp_code("654321", h)
        (True, False)
    """
    if not code or not code_hash:
        return False

    try:
        return bcrypt.checkpw(code.encode("utf-8"), code_hash.encode("utf-8"))
    except (ValueError, TypeError) as e:
        utils_logger.warning(
            f"OTP comparison failed on a malformed hash: {type(e).__name__}"
        )
        return False


def mask_phone(phone: str) -> str:
    """
    Mask the middle of a phone number, keeping the first 7 and last 4 characters.

    Phones shorter than 8 characters are returned unchanged.

    Examples:
        >>> mask_phone("+966501234567")
        '+966501***4567'
        >>> mask_phone("+12345")
        '+12345'
    """
    if len(phone) < 8:
        return phone
    return f"{phone[:7]}***{phone[-4:]}"


def mask_email(email: str) -> str:
    """
    Mask the local part of an email address.

    Examples:
        >>> mask_email("jane.doe@example.com")
        'ja***@example.com'
        >>> mask_email("a@example.com")
        'a***@example.com'
    """
    local, _, domain = email.partition("@")
    if not domain:
        return email
    return f"{local[:2]}***@{domain}"


def mask_contact(contact: str) -> str:
    """Mask a phone or an email, whichever the contact is."""
    if "@" in contact:
        return mask_email(contact)
    return mask_phone(contact)


def create_jwt_token(
    data: dict[str, Any] | None, expires_delta: timedelta | None = None
) -> str:
    """
    Create a signed JWT with `exp`, `iat` and a unique `jti`.

    Args:
        data: Claims to encode. Cannot be None.
        expires_delta: Lifetime of the token. Defaults to 15 minutes.
            May be negative to mint already-expired tokens in tests.

    Returns:
        str: Encoded JWT token string in the format: header.payload.signature

    Raises:
        ValueError: If data is None.
    """
    if data is None:
        utils_logger.error("Attempted to create JWT token with None data")
        raise ValueError("Data cannot be None")

    to_encode = data.copy()

    if expires_delta is None:
        expires_delta = timedelta(minutes=15)

    now = datetime.now(timezone.utc)
    to_encode["exp"] = now + expires_delta
    to_encode["iat"] = now
    to_encode["jti"] = str(uuid.uuid4())

    return jwt.encode(
        to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def decode_jwt_token(token: str | None) -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.

    Returns None for any missing, invalid, expired or tampered token.

    Examples:
        >>> token = create_jwt_token({"sub": "123"})
        >>> decode_jwt_token(token)["sub"]
        '123'
        >>> decode_jwt_token("invalid.token.here") is None
        True
    """
    if not token:
        return None

    try:
        return jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        utils_logger.warning("JWT token decoding failed: token has expired")
        return None
    except jwt.InvalidTokenError as e:
        utils_logger.warning(
            f"JWT token decoding failed: invalid token - {type(e).__name__}"
        )
        return None


def generate_openapi_json(app: FastAPI) -> str:
    """
    Generate OpenAPI JSON schema for the given FastAPI application.

    Args:
        app: The FastAPI application instance.

    Returns:
        A pretty-printed JSON string of the OpenAPI schema.
    """
    openapi_json = json.dumps(app.openapi(), indent=4)
    utils_logger.info("OpenAPI JSON schema generated successfully")
    return openapi_json


async def write_to_file_async(file_path: str, data: str) -> None:
    """
    Asynchronously write data to a file.

    Args:
        file_path: Path to the file where data should be written.
        data: The string data to write to the file.
    """
    async with aiofiles.open(file_path, mode="w", encoding="utf-8") as file:
        await file.write(data)
    utils_logger.info(f"Data written to {file_path} successfully")


__all__ = [
    "generate_otp_code",
    "hash_otp_code",
    "verify_otp_code",
    "mask_phone",
    "mask_email",
    "mask_contact",
    "create_jwt_token",
    "decode_jwt_token",
    "generate_openapi_json",
    "write_to_file_async",
]
