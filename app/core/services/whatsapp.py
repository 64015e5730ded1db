"""
WhatsApp gateway client.

Sends plain text messages through a hosted WhatsApp session gateway. The
gateway is slow at times, so the HTTP timeout is generous; callers that need
an answer sooner bound the wait themselves.
"""

from typing import Any

import httpx

from app.core.config import settings, whatsapp_logger


class WhatsAppService:
    """
    Singleton client for the WhatsApp session gateway.

    Transport and HTTP errors never escape `send_text`; they are reported in
    the returned dict so the caller can fall back to another channel.

    Example:
        >>> await WhatsAppService.init()
        >>> await WhatsAppService.send_text("+966501234567", "Your code is 123456")
        {'success': True, 'message_id': 'wamid.123'}
    """

    _base_url: str = settings.WHATSAPP_API_URL
    _session_id: str = settings.WHATSAPP_SESSION_ID
    _access_token: str = settings.WHATSAPP_ACCESS_TOKEN
    _timeout: float = settings.WHATSAPP_TIMEOUT_SECONDS
    _client: httpx.AsyncClient | None = None

    _SEND_TEXT_PATH = "/whatsapp/api/v1/message/text/send"
    _CHECK_SESSION_PATH = "/whatsapp/api/v1/session/{session_id}/check"

    @classmethod
    def is_configured(cls) -> bool:
        return bool(cls._base_url and cls._session_id and cls._access_token)

    @classmethod
    def _init_client(cls) -> None:
        if cls._client is None and cls._base_url:
            cls._client = httpx.AsyncClient(
                base_url=cls._base_url.rstrip("/"),
                timeout=httpx.Timeout(cls._timeout),
            )
            whatsapp_logger.info("WhatsApp HTTP client initialized")

    @classmethod
    async def init(
        cls,
        base_url: str | None = None,
        session_id: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Configure the gateway credentials and open a fresh HTTP client.

        Arguments left as None keep their current values.
        """
        if base_url is not None:
            cls._base_url = base_url
        if session_id is not None:
            cls._session_id = session_id
        if access_token is not None:
            cls._access_token = access_token
        if timeout is not None:
            cls._timeout = timeout
        await cls.aclose()
        cls._init_client()

        if not cls.is_configured():
            whatsapp_logger.warning(
                "WhatsApp gateway is not configured; phone delivery will fail over to email"
            )

    @classmethod
    async def aclose(cls) -> None:
        if cls._client is not None:
            try:
                await cls._client.aclose()
            finally:
                cls._client = None
                whatsapp_logger.info("WhatsApp HTTP client closed")

    @classmethod
    def _auth_headers(cls) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {cls._access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def format_receiver(phone: str) -> str:
        """
        Normalize a phone number for the gateway.

        Examples:
            >>> WhatsAppService.format_receiver("966 50-123-4567")
            '+966501234567'
        """
        cleaned = phone.replace(" ", "").replace("-", "")
        if not cleaned.startswith("+"):
            cleaned = f"+{cleaned}"
        return cleaned

    @classmethod
    async def send_text(cls, receiver: str, text: str) -> dict[str, Any]:
        """
        Send a text message to a WhatsApp number.

        Args:
            receiver: Phone number of the recipient.
            text: Message body.

        Returns:
            dict: `{"success": True, "message_id": ...}` on success,
            `{"success": False, "error": ...}` otherwise.
        """
        if not cls.is_configured():
            return {"success": False, "error": "WhatsApp gateway is not configured"}

        if cls._client is None:
            cls._init_client()
        assert cls._client is not None

        payload = {
            "session_id": cls._session_id,
            "receiver": cls.format_receiver(receiver),
            "text": text,
        }

        try:
            resp = await cls._client.post(
                cls._SEND_TEXT_PATH, json=payload, headers=cls._auth_headers()
            )
            resp.raise_for_status()
            try:
                body = resp.json()
            except ValueError:
                body = {}
        except httpx.HTTPStatusError as exc:
            try:
                err_body = exc.response.json()
            except ValueError:
                err_body = exc.response.text
            whatsapp_logger.error(
                f"WhatsApp send failed with HTTP {exc.response.status_code}: {err_body}"
            )
            return {
                "success": False,
                "error": f"HTTP error {exc.response.status_code}",
            }
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            whatsapp_logger.error(f"WhatsApp transport error: {exc!r}")
            return {"success": False, "error": f"Transport error: {type(exc).__name__}"}

        data = body.get("data") if isinstance(body, dict) else None
        message_id = None
        if isinstance(data, dict):
            message_id = data.get("message_id") or data.get("id")
        if message_id is None and isinstance(body, dict):
            message_id = body.get("message_id")

        whatsapp_logger.info("WhatsApp message accepted by gateway")
        return {"success": True, "message_id": message_id}

    @classmethod
    async def check_connection(cls) -> dict[str, Any]:
        """
        Ask the gateway whether the configured session is connected.

        Returns:
            dict: `{"connected": bool, ...}` plus an `error` key on failure.
        """
        if not cls.is_configured():
            return {"connected": False, "error": "WhatsApp gateway is not configured"}

        if cls._client is None:
            cls._init_client()
        assert cls._client is not None

        try:
            resp = await cls._client.get(
                cls._CHECK_SESSION_PATH.format(session_id=cls._session_id),
                headers=cls._auth_headers(),
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            whatsapp_logger.warning(f"WhatsApp session check failed: {exc!r}")
            return {"connected": False, "error": str(exc)}

        data = body.get("data", body) if isinstance(body, dict) else {}
        connected = bool(data.get("connected") or data.get("status") == "connected")
        return {"connected": connected, "status": data.get("status")}


__all__ = ["WhatsAppService"]
