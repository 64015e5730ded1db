"""
Message channels that carry a verification code to a person.

Each channel wraps one provider service and reports the outcome as a
`SendResult` instead of raising, so the delivery layer can treat every
failure the same way.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from app.core.config import delivery_logger, settings
from app.core.exceptions.types import AppException
from app.core.services.brevo import BrevoService, Contact
from app.core.services.template import Renderer
from app.core.services.whatsapp import WhatsAppService
from app.core.utils import mask_email, mask_phone


@dataclass
class SendResult:
    """Outcome of a single send attempt."""

    success: bool
    error: str | None = None
    message_id: str | None = None


class MessageChannel(ABC):
    """A way of getting a code to a contact."""

    name: str = "channel"

    @abstractmethod
    async def send_code(self, contact: str, code: str) -> SendResult:
        """
        Send `code` to `contact`.

        Implementations must not raise for provider failures.
        """
        pass

    async def status(self) -> dict[str, Any]:
        """Report whether the channel can currently deliver."""
        return {"enabled": True}


class WhatsAppChannel(MessageChannel):
    """Primary channel: a WhatsApp text to the phone number."""

    name = "whatsapp"

    @staticmethod
    def build_message(code: str) -> str:
        return (
            f"*{code}* is your verification code. "
            "For your security, do not share this code with anyone."
        )

    async def send_code(self, contact: str, code: str) -> SendResult:
        result = await WhatsAppService.send_text(contact, self.build_message(code))
        if result.get("success"):
            delivery_logger.info(f"WhatsApp code sent to {mask_phone(contact)}")
            return SendResult(success=True, message_id=result.get("message_id"))

        error = result.get("error") or "WhatsApp send failed"
        delivery_logger.warning(
            f"WhatsApp code to {mask_phone(contact)} failed: {error}"
        )
        return SendResult(success=False, error=error)

    async def status(self) -> dict[str, Any]:
        if not WhatsAppService.is_configured():
            return {"enabled": False, "connected": False}
        connection = await WhatsAppService.check_connection()
        return {"enabled": True, **connection}


class EmailChannel(MessageChannel):
    """Secondary channel: a Brevo transactional email."""

    name = "email"
    template_name = "emails/otp_code.html"

    async def _render(self, code: str) -> tuple[str | None, str]:
        text = (
            f"Your {settings.APP_NAME} verification code is {code}. "
            "Do not share this code with anyone."
        )
        if not Renderer.is_initialized():
            return None, text

        html = await Renderer.render_template(
            self.template_name,
            {
                "app_name": settings.APP_NAME,
                "otp_code": code,
                "year": datetime.now(timezone.utc).year,
            },
        )
        return html, text

    async def send_code(self, contact: str, code: str) -> SendResult:
        try:
            html, text = await self._render(code)
            response = await BrevoService.send_transactional_email(
                subject=f"Your verification code - {settings.APP_NAME}",
                to=Contact(email=contact),
                html_content=html,
                text_content=text,
            )
        except AppException as e:
            delivery_logger.warning(
                f"Email code to {mask_email(contact)} failed: {e.message}"
            )
            return SendResult(success=False, error=e.message)
        except Exception as e:
            delivery_logger.error(
                f"Email code to {mask_email(contact)} failed unexpectedly: {e!r}"
            )
            return SendResult(success=False, error=str(e))

        message_id = response.get("messageId") if isinstance(response, dict) else None
        delivery_logger.info(f"Email code sent to {mask_email(contact)}")
        return SendResult(success=True, message_id=message_id)

    async def status(self) -> dict[str, Any]:
        if not BrevoService.is_configured():
            return {"enabled": False, "verified": False}
        return {"enabled": True, "verified": await BrevoService.check_account()}


__all__ = [
    "SendResult",
    "MessageChannel",
    "WhatsAppChannel",
    "EmailChannel",
]
