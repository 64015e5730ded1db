"""
Delivery of verification codes with a bounded primary deadline.

The preferred channel is raced against a deadline. When the deadline wins,
the slow send is left running in the background and the request moves on to
the other channel. Whatever the slow send eventually does is logged, and if
it delivered the code the challenge records it.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import delivery_logger, settings
from app.core.db import AsyncSessionLocal
from app.core.db.crud import otp_challenge_db
from app.core.enums import DeliveryChannel, SendFailureReason
from app.core.exceptions.types import DatabaseException
from app.core.services.channels import (
    EmailChannel,
    MessageChannel,
    SendResult,
    WhatsAppChannel,
)
from app.core.utils import mask_contact


@dataclass
class DeliveryResult:
    """
    Outcome of delivering one code.

    Attributes:
        channel_used: The channel that delivered the code, NONE on failure.
        success: Whether any channel delivered the code in time.
        error: Last provider error, if any.
        reason: Why delivery failed. None on success.
    """

    channel_used: DeliveryChannel
    success: bool
    error: str | None = None
    reason: SendFailureReason | None = None


@dataclass
class _Leg:
    channel: MessageChannel
    kind: DeliveryChannel
    contact: str


class ChannelOrchestrator:
    """
    Sends a code through the preferred channel, falling back to the other.

    Args:
        primary: Channel used for phones. Defaults to WhatsApp.
        secondary: Channel used for emails. Defaults to Brevo email.
        deadline: Seconds the first leg may take before the request moves on.
            Defaults to settings.OTP_PRIMARY_DEADLINE_SECONDS.
        budget: Seconds one delivery may take across both legs. The fallback
            leg only gets what the first leg left over. Defaults to
            settings.OTP_DELIVERY_BUDGET_SECONDS.
        session_factory: Session maker used to record late deliveries.
    """

    def __init__(
        self,
        primary: MessageChannel | None = None,
        secondary: MessageChannel | None = None,
        deadline: float | None = None,
        budget: float | None = None,
        session_factory: Callable[[], AsyncSession] | None = None,
    ):
        self.primary = primary or WhatsAppChannel()
        self.secondary = secondary or EmailChannel()
        self.deadline = (
            deadline if deadline is not None else settings.OTP_PRIMARY_DEADLINE_SECONDS
        )
        self.budget = (
            budget if budget is not None else settings.OTP_DELIVERY_BUDGET_SECONDS
        )
        self._session_factory = session_factory or AsyncSessionLocal
        # Strong references so the event loop does not drop running sends
        self._background: set[asyncio.Task] = set()

    def _legs(
        self, phone: str | None, email: str | None, prefer: DeliveryChannel
    ) -> list[_Leg]:
        legs = []
        if phone:
            legs.append(_Leg(self.primary, DeliveryChannel.PRIMARY, phone))
        if email:
            legs.append(_Leg(self.secondary, DeliveryChannel.SECONDARY, email))
        if prefer == DeliveryChannel.SECONDARY:
            legs.reverse()
        return legs

    async def _run_leg(
        self,
        leg: _Leg,
        code: str,
        deadline: float,
        challenge_id: UUID | None,
    ) -> SendResult | None:
        """
        Run one leg for at most `deadline` seconds.

        Returns:
            The SendResult, or None if the deadline elapsed first. A timed-out
            send is not cancelled.
        """
        task = asyncio.create_task(leg.channel.send_code(leg.contact, code))
        done, _ = await asyncio.wait({task}, timeout=deadline)

        if task in done:
            try:
                return task.result()
            except Exception as e:
                delivery_logger.error(
                    f"{leg.channel.name} send to {mask_contact(leg.contact)} raised: {e!r}"
                )
                return SendResult(success=False, error=str(e))

        delivery_logger.warning(
            f"{leg.channel.name} send to {mask_contact(leg.contact)} "
            f"exceeded {deadline}s deadline; continuing in background"
        )
        follow_up = asyncio.create_task(self._finish_late(task, leg, challenge_id))
        self._background.add(follow_up)
        follow_up.add_done_callback(self._background.discard)
        return None

    async def _finish_late(
        self,
        task: asyncio.Task,
        leg: _Leg,
        challenge_id: UUID | None,
    ) -> None:
        try:
            result: SendResult = await task
        except Exception as e:
            delivery_logger.error(
                f"Late {leg.channel.name} send to {mask_contact(leg.contact)} raised: {e!r}"
            )
            return

        if not result.success:
            delivery_logger.info(
                f"Late {leg.channel.name} send to {mask_contact(leg.contact)} "
                f"failed: {result.error}"
            )
            return

        delivery_logger.info(
            f"Late {leg.channel.name} send to {mask_contact(leg.contact)} delivered"
        )
        if challenge_id is None:
            return

        try:
            async with self._session_factory() as session:
                recorded = await otp_challenge_db.set_delivery_channel(
                    session,
                    challenge_id,
                    leg.kind,
                    only_if_unset=True,
                    commit_self=True,
                )
        except DatabaseException as e:
            delivery_logger.error(
                f"Could not record late delivery for challenge {challenge_id}: {e.message}"
            )
            return

        if recorded:
            delivery_logger.info(
                f"Recorded late {leg.kind.value} delivery for challenge {challenge_id}"
            )

    async def deliver(
        self,
        code: str,
        phone: str | None = None,
        email: str | None = None,
        prefer: DeliveryChannel = DeliveryChannel.PRIMARY,
        deadline: float | None = None,
        budget: float | None = None,
        challenge_id: UUID | None = None,
    ) -> DeliveryResult:
        """
        Deliver `code` to the preferred contact, then to the other one.

        Args:
            code: The plaintext code.
            phone: Phone number for the primary channel.
            email: Email address for the secondary channel.
            prefer: Which channel to try first.
            deadline: First leg deadline in seconds. Defaults to the instance deadline.
            budget: Total seconds for both legs. Defaults to the instance budget.
            challenge_id: Challenge that records a late delivery.

        Returns:
            DeliveryResult. On failure `reason` is TIMEOUT when the first leg
            timed out with nothing to fall back to, NO_SECONDARY_CHANNEL when
            it failed with nothing to fall back to, and CHANNEL_ERROR when the
            fallback failed as well. The call returns within `budget` seconds.
        """
        budget = self.budget if budget is None else budget
        deadline = min(self.deadline if deadline is None else deadline, budget)
        legs = self._legs(phone, email, prefer)
        if not legs:
            return DeliveryResult(
                channel_used=DeliveryChannel.NONE,
                success=False,
                error="No contact to deliver to",
                reason=SendFailureReason.NO_SECONDARY_CHANNEL,
            )

        first, fallback = legs[0], legs[1] if len(legs) > 1 else None

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await self._run_leg(first, code, deadline, challenge_id)
        if result is not None and result.success:
            return DeliveryResult(channel_used=first.kind, success=True)

        timed_out = result is None
        first_error = "Delivery timed out" if timed_out else result.error

        if fallback is None:
            return DeliveryResult(
                channel_used=DeliveryChannel.NONE,
                success=False,
                error=first_error,
                reason=(
                    SendFailureReason.TIMEOUT
                    if timed_out
                    else SendFailureReason.NO_SECONDARY_CHANNEL
                ),
            )

        remaining = budget - (loop.time() - started)
        if remaining <= 0:
            delivery_logger.warning(
                f"No time left to fall back from {first.channel.name} "
                f"to {fallback.channel.name}"
            )
            return DeliveryResult(
                channel_used=DeliveryChannel.NONE,
                success=False,
                error=first_error,
                reason=(
                    SendFailureReason.TIMEOUT
                    if timed_out
                    else SendFailureReason.CHANNEL_ERROR
                ),
            )

        delivery_logger.info(
            f"Falling back from {first.channel.name} to {fallback.channel.name} "
            f"with {remaining:.1f}s left"
        )
        result = await self._run_leg(fallback, code, remaining, challenge_id)
        if result is not None and result.success:
            return DeliveryResult(channel_used=fallback.kind, success=True)

        return DeliveryResult(
            channel_used=DeliveryChannel.NONE,
            success=False,
            error="Delivery timed out" if result is None else result.error,
            reason=SendFailureReason.CHANNEL_ERROR,
        )

    async def channel_status(self) -> dict[str, Any]:
        """
        Report which channels can deliver right now.

        Returns:
            dict with `whatsapp` and `email` status and the `recommended`
            channel name, or None when neither works.
        """
        whatsapp, email = await asyncio.gather(
            self.primary.status(), self.secondary.status()
        )
        whatsapp_ok = whatsapp.get("enabled") and whatsapp.get("connected", True)
        email_ok = email.get("enabled") and email.get("verified", True)

        recommended = None
        if whatsapp_ok:
            recommended = self.primary.name
        elif email_ok:
            recommended = self.secondary.name

        return {"whatsapp": whatsapp, "email": email, "recommended": recommended}

    async def drain(self) -> None:
        """Wait for every background send to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._background)


# Shared orchestrator so background sends survive the request that started them
channel_orchestrator = ChannelOrchestrator()


__all__ = ["DeliveryResult", "ChannelOrchestrator", "channel_orchestrator"]
