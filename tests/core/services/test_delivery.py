"""
Test suite for code delivery across WhatsApp and email.

Uses fake channels with configurable latency so the deadline and the
background completion of slow sends can be observed.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import DeliveryChannel, SendFailureReason
from app.core.services.delivery import ChannelOrchestrator


def _orchestrator(primary, secondary, session_factory, deadline=0.2):
    return ChannelOrchestrator(
        primary=primary,
        secondary=secondary,
        deadline=deadline,
        session_factory=session_factory,
    )


class TestDeliver:

    @pytest.mark.asyncio
    async def test_primary_success(self, session_factory, fake_channel):
        whatsapp, email = fake_channel("whatsapp"), fake_channel("email")
        orchestrator = _orchestrator(whatsapp, email, session_factory)

        result = await orchestrator.deliver(
            "123456", phone="+15550001111", email="guest@example.com"
        )

        assert result.success is True
        assert result.channel_used == DeliveryChannel.PRIMARY
        assert whatsapp.sent == [("+15550001111", "123456")]
        assert email.sent == []

    @pytest.mark.asyncio
    async def test_falls_back_to_email_on_failure(self, session_factory, fake_channel):
        whatsapp = fake_channel("whatsapp", succeed=False)
        email = fake_channel("email")
        orchestrator = _orchestrator(whatsapp, email, session_factory)

        result = await orchestrator.deliver(
            "123456", phone="+15550001111", email="guest@example.com"
        )

        assert result.success is True
        assert result.channel_used == DeliveryChannel.SECONDARY
        assert email.sent == [("guest@example.com", "123456")]

    @pytest.mark.asyncio
    async def test_falls_back_to_email_on_timeout(self, session_factory, fake_channel):
        whatsapp = fake_channel("whatsapp", delay=0.5)
        email = fake_channel("email")
        orchestrator = _orchestrator(whatsapp, email, session_factory, deadline=0.05)

        result = await orchestrator.deliver(
            "123456", phone="+15550001111", email="guest@example.com"
        )

        assert result.success is True
        assert result.channel_used == DeliveryChannel.SECONDARY
        assert orchestrator.pending == 1

        await orchestrator.drain()
        # The slow send was not cancelled
        assert whatsapp.sent == [("+15550001111", "123456")]

    @pytest.mark.asyncio
    async def test_timeout_without_email(self, session_factory, fake_channel):
        whatsapp = fake_channel("whatsapp", delay=0.5)
        orchestrator = _orchestrator(
            whatsapp, fake_channel("email"), session_factory, deadline=0.05
        )

        result = await orchestrator.deliver("123456", phone="+15550001111")

        assert result.success is False
        assert result.channel_used == DeliveryChannel.NONE
        assert result.reason == SendFailureReason.TIMEOUT
        await orchestrator.drain()

    @pytest.mark.asyncio
    async def test_failure_without_email(self, session_factory, fake_channel):
        orchestrator = _orchestrator(
            fake_channel("whatsapp", succeed=False),
            fake_channel("email"),
            session_factory,
        )

        result = await orchestrator.deliver("123456", phone="+15550001111")

        assert result.success is False
        assert result.reason == SendFailureReason.NO_SECONDARY_CHANNEL

    @pytest.mark.asyncio
    async def test_both_channels_fail(self, session_factory, fake_channel):
        orchestrator = _orchestrator(
            fake_channel("whatsapp", succeed=False),
            fake_channel("email", succeed=False),
            session_factory,
        )

        result = await orchestrator.deliver(
            "123456", phone="+15550001111", email="guest@example.com"
        )

        assert result.success is False
        assert result.reason == SendFailureReason.CHANNEL_ERROR
        assert result.error == "email unavailable"

    @pytest.mark.asyncio
    async def test_email_only(self, session_factory, fake_channel):
        whatsapp, email = fake_channel("whatsapp"), fake_channel("email")
        orchestrator = _orchestrator(whatsapp, email, session_factory)

        result = await orchestrator.deliver("123456", email="guest@example.com")

        assert result.channel_used == DeliveryChannel.SECONDARY
        assert whatsapp.sent == []

    @pytest.mark.asyncio
    async def test_prefer_secondary_tries_email_first(
        self, session_factory, fake_channel
    ):
        whatsapp, email = fake_channel("whatsapp"), fake_channel("email")
        orchestrator = _orchestrator(whatsapp, email, session_factory)

        result = await orchestrator.deliver(
            "123456",
            phone="+15550001111",
            email="guest@example.com",
            prefer=DeliveryChannel.SECONDARY,
        )

        assert result.channel_used == DeliveryChannel.SECONDARY
        assert whatsapp.sent == []

    @pytest.mark.asyncio
    async def test_no_contact(self, session_factory, fake_channel):
        orchestrator = _orchestrator(
            fake_channel("whatsapp"), fake_channel("email"), session_factory
        )

        result = await orchestrator.deliver("123456")

        assert result.success is False
        assert result.reason == SendFailureReason.NO_SECONDARY_CHANNEL

    @pytest.mark.asyncio
    async def test_raising_channel_counts_as_failure(
        self, session_factory, fake_channel
    ):
        whatsapp = fake_channel("whatsapp")
        whatsapp.send_code = AsyncMock(side_effect=RuntimeError("boom"))
        email = fake_channel("email")
        orchestrator = _orchestrator(whatsapp, email, session_factory)

        result = await orchestrator.deliver(
            "123456", phone="+15550001111", email="guest@example.com"
        )

        assert result.channel_used == DeliveryChannel.SECONDARY

    @pytest.mark.asyncio
    async def test_fallback_only_gets_what_is_left_of_the_budget(
        self, session_factory, fake_channel
    ):
        whatsapp = fake_channel("whatsapp", delay=0.4)
        email = fake_channel("email", delay=0.4)
        orchestrator = ChannelOrchestrator(
            primary=whatsapp,
            secondary=email,
            deadline=0.1,
            budget=0.12,
            session_factory=session_factory,
        )

        with patch.object(
            orchestrator, "_run_leg", wraps=orchestrator._run_leg
        ) as run_leg:
            result = await orchestrator.deliver(
                "123456", phone="+15550001111", email="guest@example.com"
            )

        assert result.success is False
        assert result.channel_used == DeliveryChannel.NONE
        first_deadline = run_leg.call_args_list[0].args[2]
        fallback_deadline = run_leg.call_args_list[1].args[2]
        assert first_deadline == 0.1
        # 0.12s budget minus the 0.1s the first leg used
        assert 0 < fallback_deadline <= 0.03

        await orchestrator.drain()

    @pytest.mark.asyncio
    async def test_deadline_is_capped_by_budget(self, session_factory, fake_channel):
        whatsapp = fake_channel("whatsapp")
        orchestrator = ChannelOrchestrator(
            primary=whatsapp,
            secondary=fake_channel("email"),
            deadline=5.0,
            budget=1.0,
            session_factory=session_factory,
        )

        with patch.object(
            orchestrator, "_run_leg", wraps=orchestrator._run_leg
        ) as run_leg:
            await orchestrator.deliver("123456", phone="+15550001111")

        assert run_leg.call_args.args[2] == 1.0


class TestLateDelivery:

    @pytest.mark.asyncio
    async def test_late_primary_delivery_is_recorded(
        self, db_session: AsyncSession, session_factory, make_challenge, fake_channel
    ):
        from app.core.db.crud import otp_challenge_db

        challenge = await make_challenge()
        whatsapp = fake_channel("whatsapp", delay=0.2)
        orchestrator = _orchestrator(
            whatsapp,
            fake_channel("email", succeed=False),
            session_factory,
            deadline=0.02,
        )

        result = await orchestrator.deliver(
            "123456",
            phone="+15550001111",
            email="guest@example.com",
            challenge_id=challenge.id,
        )
        assert result.success is False

        await orchestrator.drain()

        row = await otp_challenge_db.get_by_id(
            db_session, challenge.id, populate_existing=True
        )
        assert row.delivery_channel == DeliveryChannel.PRIMARY

    @pytest.mark.asyncio
    async def test_late_delivery_does_not_overwrite_recorded_channel(
        self, db_session: AsyncSession, session_factory, make_challenge, fake_channel
    ):
        from app.core.db.crud import otp_challenge_db

        challenge = await make_challenge()
        orchestrator = _orchestrator(
            fake_channel("whatsapp", delay=0.2),
            fake_channel("email"),
            session_factory,
            deadline=0.02,
        )

        result = await orchestrator.deliver(
            "123456",
            phone="+15550001111",
            email="guest@example.com",
            challenge_id=challenge.id,
        )
        await otp_challenge_db.set_delivery_channel(
            db_session, challenge.id, result.channel_used
        )
        await orchestrator.drain()

        row = await otp_challenge_db.get_by_id(
            db_session, challenge.id, populate_existing=True
        )
        assert row.delivery_channel == DeliveryChannel.SECONDARY

    @pytest.mark.asyncio
    async def test_late_failure_records_nothing(
        self, db_session: AsyncSession, session_factory, make_challenge, fake_channel
    ):
        from app.core.db.crud import otp_challenge_db

        challenge = await make_challenge()
        orchestrator = _orchestrator(
            fake_channel("whatsapp", succeed=False, delay=0.1),
            fake_channel("email"),
            session_factory,
            deadline=0.02,
        )

        with patch.object(
            otp_challenge_db, "set_delivery_channel", new_callable=AsyncMock
        ) as mock_set:
            await orchestrator.deliver(
                "123456",
                phone="+15550001111",
                email="guest@example.com",
                challenge_id=challenge.id,
            )
            await orchestrator.drain()

        mock_set.assert_not_called()


class TestChannelStatus:

    @pytest.mark.asyncio
    async def test_recommends_whatsapp_when_available(
        self, session_factory, fake_channel
    ):
        orchestrator = _orchestrator(
            fake_channel("whatsapp"), fake_channel("email"), session_factory
        )

        status = await orchestrator.channel_status()

        assert status["recommended"] == "whatsapp"

    @pytest.mark.asyncio
    async def test_recommends_email_when_whatsapp_down(
        self, session_factory, fake_channel
    ):
        orchestrator = _orchestrator(
            fake_channel("whatsapp", succeed=False),
            fake_channel("email"),
            session_factory,
        )

        status = await orchestrator.channel_status()

        assert status["recommended"] == "email"
        assert status["whatsapp"] == {"enabled": False}

    @pytest.mark.asyncio
    async def test_no_recommendation_when_both_down(
        self, session_factory, fake_channel
    ):
        orchestrator = _orchestrator(
            fake_channel("whatsapp", succeed=False),
            fake_channel("email", succeed=False),
            session_factory,
        )

        status = await orchestrator.channel_status()

        assert status["recommended"] is None
