import asyncio
import random
from typing import Any

from fastapi import status as http_status
import httpx
from pydantic import BaseModel

from app.core.config import brevo_logger, settings
from app.core.exceptions.types import AppException


class Contact(BaseModel):
    email: str
    name: str | None = None


class BrevoService:
    _base_url: str = settings.BREVO_BASE_URL
    _api_key: str = settings.BREVO_API_KEY
    _sender_email: str = settings.BREVO_SENDER_EMAIL
    _sender_name: str = settings.BREVO_SENDER_NAME
    _client: httpx.AsyncClient | None = None

    # Bounded retries + backoff
    _BACKOFF_BASE: float = 1.0
    _BACKOFF_MAX: float = 10.0
    _JITTER: float = 0.2  # +/-20%

    @classmethod
    def _init_client(cls) -> None:
        """Create the shared HTTP client once."""
        if cls._client is None:
            cls._client = httpx.AsyncClient(
                base_url=cls._base_url,
                timeout=httpx.Timeout(30.0),
            )
            brevo_logger.info("Brevo HTTP client initialized")

    @classmethod
    async def aclose(cls) -> None:
        if cls._client is not None:
            try:
                await cls._client.aclose()
            finally:
                cls._client = None
                brevo_logger.info("Brevo HTTP client closed")

    @classmethod
    async def init(
        cls,
        api_key: str | None = None,
        sender_email: str | None = None,
        sender_name: str | None = None,
    ) -> None:
        """
        Configure credentials and the sender identity, then open a new client.

        Args:
            api_key: Brevo API key. Unchanged when None.
            sender_email: Address codes are sent from. Unchanged when None.
            sender_name: Display name of the sender. Unchanged when None.
        """
        if api_key is not None:
            cls._api_key = api_key
        if sender_email is not None:
            cls._sender_email = sender_email
        if sender_name is not None:
            cls._sender_name = sender_name
        await cls.aclose()
        cls._init_client()

    @classmethod
    def is_configured(cls) -> bool:
        return bool(cls._api_key) and cls._api_key != "your_brevo_api_key"

    @classmethod
    def _compute_backoff(
        cls, attempt: int, err_headers: httpx.Headers | None = None
    ) -> float:
        """
        Seconds to wait before retry number `attempt` (1-based).

        Honors Brevo's `x-sib-ratelimit-reset` header when present, otherwise
        uses exponential backoff capped at `_BACKOFF_MAX` with +/-20% jitter.
        """
        if err_headers and "x-sib-ratelimit-reset" in err_headers:
            try:
                return float(err_headers.get("x-sib-ratelimit-reset"))
            except ValueError:
                pass
        base = min(cls._BACKOFF_BASE * (2 ** (attempt - 1)), cls._BACKOFF_MAX)
        jitter = random.uniform(1 - cls._JITTER, 1 + cls._JITTER)
        return base * jitter

    @classmethod
    def _auth_headers(cls, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "api-key": cls._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    @classmethod
    async def _request(
        cls,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        max_attempts: int = 2,
    ) -> dict[str, Any] | str:
        """
        Call the Brevo API with bounded retries.

        5xx responses, 429s and network errors are retried with backoff. Any
        other 4xx is returned to the caller immediately as an AppException.

        Returns:
            The JSON body, or the raw text when the body is not JSON.

        Raises:
            AppException: When the request fails or retries are exhausted.
        """
        if cls._client is None:
            cls._init_client()
        assert cls._client is not None

        for attempt in range(1, max_attempts + 1):
            try:
                resp: httpx.Response = await cls._client.request(
                    method, endpoint, headers=cls._auth_headers(headers), json=json
                )
                resp.raise_for_status()
                try:
                    body = resp.json()
                except ValueError:
                    body = resp.text

                brevo_logger.info(f"Brevo {method} {endpoint} succeeded")
                return body

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                try:
                    err_body = exc.response.json()
                except ValueError:
                    err_body = exc.response.text

                if 500 <= status < 600 or status == 429:
                    wait = cls._compute_backoff(
                        attempt, exc.response.headers if status == 429 else None
                    )
                    brevo_logger.warning(
                        f"Brevo returned {status}; attempt {attempt}/{max_attempts}; "
                        f"wait={wait:.1f}s; body={err_body}"
                    )
                    if attempt < max_attempts:
                        await asyncio.sleep(wait)
                        continue
                    brevo_logger.error(f"Brevo {status} after retries: {err_body}")
                    raise AppException(
                        message=f"Email provider error after retries: {status}",
                        status_code=status,
                    ) from exc

                brevo_logger.error(f"Brevo rejected request with {status}: {err_body}")
                raise AppException(
                    message=f"Email provider rejected request: {status}",
                    status_code=status,
                ) from exc

            except (httpx.TimeoutException, httpx.TransportError) as exc:
                wait = cls._compute_backoff(attempt)
                brevo_logger.warning(
                    f"Brevo timeout/transport error; attempt {attempt}/{max_attempts}; "
                    f"wait={wait:.1f}s; err={exc!r}"
                )
                if attempt < max_attempts:
                    await asyncio.sleep(wait)
                    continue
                brevo_logger.error(f"Brevo network error after retries: {exc!r}")
                raise AppException(
                    message="Email provider unreachable",
                    status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
                ) from exc

        raise AppException(
            message="Unexpected state: no response after all attempts",
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @classmethod
    async def send_transactional_email(
        cls,
        subject: str,
        to: Contact,
        html_content: str | None = None,
        text_content: str | None = None,
    ) -> dict[str, Any] | str:
        """
        Send one transactional email.

        Args:
            subject: Subject line.
            to: Recipient.
            html_content: HTML body.
            text_content: Plain text body.

        Returns:
            The Brevo response, normally `{"messageId": ...}`.

        Raises:
            ValueError: If neither body is given.
            AppException: If Brevo fails.
        """
        if not html_content and not text_content:
            raise ValueError("Either html_content or text_content must be provided")

        payload: dict[str, Any] = {
            "sender": Contact(
                email=cls._sender_email, name=cls._sender_name
            ).model_dump(exclude_none=True),
            "to": [to.model_dump(exclude_none=True)],
            "subject": subject,
        }
        if html_content:
            payload["htmlContent"] = html_content
        if text_content:
            payload["textContent"] = text_content

        return await cls._request("POST", "/smtp/email", json=payload)

    @classmethod
    async def check_account(cls) -> bool:
        """Whether the API key is accepted by Brevo."""
        if not cls.is_configured():
            return False
        try:
            await cls._request("GET", "/account", max_attempts=1)
        except AppException as e:
            brevo_logger.warning(f"Brevo account check failed: {e.message}")
            return False
        return True


__all__ = ["BrevoService", "Contact"]
