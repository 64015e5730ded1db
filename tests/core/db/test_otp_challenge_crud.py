"""
Test suite for challenge, identity and order CRUD operations.

Run tests:
    pytest tests/core/db/test_otp_challenge_crud.py -v
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db.crud import (
    guest_identity_db,
    order_record_db,
    otp_challenge_db,
)
from app.core.db.models import OTPChallenge
from app.core.enums import ChallengeState, DeliveryChannel, OTPPurpose
from app.core.exceptions.types import DatabaseException


class TestSupersedeActive:

    @pytest.mark.asyncio
    async def test_supersedes_only_active_for_same_target_and_purpose(
        self, db_session: AsyncSession, make_challenge
    ):
        active = await make_challenge()
        other_purpose = await make_challenge(purpose=OTPPurpose.ORDER_TRACKING)
        other_contact = await make_challenge(
            contact_key="+15559999999", phone="+15559999999"
        )

        count = await otp_challenge_db.supersede_active(
            db_session, "+15550001111", OTPPurpose.CHECKOUT
        )

        assert count == 1
        refreshed = await otp_challenge_db.get_by_id(
            db_session, active.id, populate_existing=True
        )
        assert refreshed.superseded_at is not None
        assert refreshed.is_expired()
        assert refreshed.state == ChallengeState.SUPERSEDED

        for untouched_id in (other_purpose.id, other_contact.id):
            row = await otp_challenge_db.get_by_id(
                db_session, untouched_id, populate_existing=True
            )
            assert row.superseded_at is None

    @pytest.mark.asyncio
    async def test_verified_challenge_is_never_superseded(
        self, db_session: AsyncSession, make_challenge
    ):
        challenge = await make_challenge()
        await otp_challenge_db.mark_verified(db_session, challenge.id)

        count = await otp_challenge_db.supersede_active(
            db_session, "+15550001111", OTPPurpose.CHECKOUT
        )

        assert count == 0

    @pytest.mark.asyncio
    async def test_expired_challenge_is_retired_without_extending_it(
        self, db_session: AsyncSession, make_challenge
    ):
        from app.core.db.models.base import as_utc, utcnow

        expired = await make_challenge(expires_in=timedelta(hours=-1))

        count = await otp_challenge_db.supersede_active(
            db_session, "+15550001111", OTPPurpose.CHECKOUT
        )

        assert count == 1
        row = await otp_challenge_db.get_by_id(
            db_session, expired.id, populate_existing=True
        )
        assert row.superseded_at is not None
        assert as_utc(row.expires_at) < utcnow() - timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_second_live_challenge_for_target_is_rejected(
        self, db_session: AsyncSession, make_challenge
    ):
        await make_challenge()

        with pytest.raises(DatabaseException):
            await make_challenge()


class TestReplaceActive:

    @staticmethod
    def _data(code_hash: str) -> dict:
        from app.core.db.models.base import utcnow

        return {
            "contact_key": "+15550001111",
            "phone": "+15550001111",
            "purpose": OTPPurpose.CHECKOUT,
            "code_hash": code_hash,
            "max_attempts": 3,
            "expires_at": utcnow() + timedelta(minutes=10),
        }

    @pytest.mark.asyncio
    async def test_supersedes_and_inserts(
        self, db_session: AsyncSession, make_challenge
    ):
        previous = await make_challenge()

        challenge, superseded = await otp_challenge_db.replace_active(
            db_session, self._data(previous.code_hash)
        )

        assert superseded == 1
        assert challenge.state == ChallengeState.PENDING_VERIFICATION
        old = await otp_challenge_db.get_by_id(
            db_session, previous.id, populate_existing=True
        )
        assert old.state == ChallengeState.SUPERSEDED

    @pytest.mark.asyncio
    async def test_insert_that_lost_a_race_is_retried(
        self, db_session: AsyncSession, make_challenge
    ):
        previous = await make_challenge()
        original_supersede = otp_challenge_db.supersede_active
        calls = []

        async def lagging_supersede(session, contact_key, purpose, commit_self=True):
            calls.append(contact_key)
            if len(calls) == 1:
                # The competing insert was not committed yet when this ran
                return 0
            return await original_supersede(
                session, contact_key, purpose, commit_self=commit_self
            )

        with patch.object(
            otp_challenge_db, "supersede_active", side_effect=lagging_supersede
        ):
            challenge, superseded = await otp_challenge_db.replace_active(
                db_session, self._data(previous.code_hash)
            )

        assert len(calls) == 2
        assert superseded == 1
        live = await otp_challenge_db.count_by_conditions(
            db_session,
            [
                OTPChallenge.contact_key == "+15550001111",
                OTPChallenge.verified.is_(False),
                OTPChallenge.superseded_at.is_(None),
            ],
        )
        assert live == 1
        assert challenge.superseded_at is None

    @pytest.mark.asyncio
    async def test_conflict_beyond_retries_raises(
        self, db_session: AsyncSession, make_challenge
    ):
        previous = await make_challenge()

        with patch.object(
            otp_challenge_db, "supersede_active", new=AsyncMock(return_value=0)
        ):
            with pytest.raises(DatabaseException):
                await otp_challenge_db.replace_active(
                    db_session, self._data(previous.code_hash), retries=1
                )


class TestIncrementAttempts:

    @pytest.mark.asyncio
    async def test_increments_up_to_ceiling(
        self, db_session: AsyncSession, make_challenge
    ):
        challenge = await make_challenge()

        assert await otp_challenge_db.increment_attempts(db_session, challenge.id) == 1
        assert await otp_challenge_db.increment_attempts(db_session, challenge.id) == 2
        assert await otp_challenge_db.increment_attempts(db_session, challenge.id) == 3
        assert (
            await otp_challenge_db.increment_attempts(db_session, challenge.id) is None
        )

        row = await otp_challenge_db.get_by_id(
            db_session, challenge.id, populate_existing=True
        )
        assert row.attempts == 3
        assert row.state == ChallengeState.EXHAUSTED


class TestMarkVerified:

    @pytest.mark.asyncio
    async def test_only_first_call_wins(self, db_session: AsyncSession, make_challenge):
        challenge = await make_challenge()

        assert await otp_challenge_db.mark_verified(db_session, challenge.id) is True
        assert await otp_challenge_db.mark_verified(db_session, challenge.id) is False

        row = await otp_challenge_db.get_by_id(
            db_session, challenge.id, populate_existing=True
        )
        assert row.verified is True
        assert row.verified_at is not None

    @pytest.mark.asyncio
    async def test_superseded_challenge_cannot_be_verified(
        self, db_session: AsyncSession, make_challenge
    ):
        challenge = await make_challenge()
        await otp_challenge_db.supersede_active(
            db_session, "+15550001111", OTPPurpose.CHECKOUT
        )

        assert await otp_challenge_db.mark_verified(db_session, challenge.id) is False

        row = await otp_challenge_db.get_by_id(
            db_session, challenge.id, populate_existing=True
        )
        assert row.verified is False
        assert row.state == ChallengeState.SUPERSEDED

    @pytest.mark.asyncio
    async def test_expired_challenge_cannot_be_verified(
        self, db_session: AsyncSession, make_challenge
    ):
        challenge = await make_challenge(expires_in=timedelta(seconds=-1))

        assert await otp_challenge_db.mark_verified(db_session, challenge.id) is False


class TestSetDeliveryChannel:

    @pytest.mark.asyncio
    async def test_only_if_unset_keeps_existing_channel(
        self, db_session: AsyncSession, make_challenge
    ):
        challenge = await make_challenge()

        assert await otp_challenge_db.set_delivery_channel(
            db_session, challenge.id, DeliveryChannel.SECONDARY
        )
        assert not await otp_challenge_db.set_delivery_channel(
            db_session, challenge.id, DeliveryChannel.PRIMARY, only_if_unset=True
        )

        row = await otp_challenge_db.get_by_id(
            db_session, challenge.id, populate_existing=True
        )
        assert row.delivery_channel == DeliveryChannel.SECONDARY


class TestEmailKnownForPhone:

    @pytest.mark.asyncio
    async def test_pairing_from_earlier_challenge(
        self, db_session: AsyncSession, make_challenge
    ):
        await make_challenge(email="guest@example.com")

        assert await otp_challenge_db.email_known_for_phone(
            db_session, "+15550001111", "guest@example.com"
        )
        assert not await otp_challenge_db.email_known_for_phone(
            db_session, "+15550001111", "stranger@example.com"
        )


class TestPurgeExpired:

    @pytest.mark.asyncio
    async def test_deletes_only_past_retention(
        self, db_session: AsyncSession, make_challenge
    ):
        old = await make_challenge(
            contact_key="+15550003333", expires_in=timedelta(days=-2)
        )
        recent = await make_challenge(
            contact_key="+15550004444", expires_in=timedelta(hours=-1)
        )
        live = await make_challenge()

        deleted = await otp_challenge_db.purge_expired(db_session, retention_days=1)

        assert deleted == 1
        assert await otp_challenge_db.get_by_id(db_session, old.id) is None
        assert await otp_challenge_db.get_by_id(db_session, recent.id) is not None
        assert await otp_challenge_db.get_by_id(db_session, live.id) is not None


class TestGuestIdentityDB:

    @pytest.mark.asyncio
    async def test_get_by_contact_prefers_phone(self, db_session: AsyncSession):
        by_phone = await guest_identity_db.create(
            db_session, {"phone": "+15550001111"}
        )
        await guest_identity_db.create(db_session, {"email": "guest@example.com"})

        found = await guest_identity_db.get_by_contact(
            db_session, phone="+15550001111", email="guest@example.com"
        )
        assert found.id == by_phone.id

    @pytest.mark.asyncio
    async def test_get_by_contact_falls_back_to_email(self, db_session: AsyncSession):
        by_email = await guest_identity_db.create(
            db_session, {"email": "guest@example.com"}
        )

        found = await guest_identity_db.get_by_contact(
            db_session, phone="+15550009999", email="guest@example.com"
        )
        assert found.id == by_email.id

    @pytest.mark.asyncio
    async def test_mark_contact_verified_never_clears_flags(
        self, db_session: AsyncSession
    ):
        identity = await guest_identity_db.create(
            db_session, {"phone": "+15550001111", "email_verified": True}
        )

        await guest_identity_db.mark_contact_verified(
            db_session, identity, phone_verified=True
        )

        row = await guest_identity_db.get_by_id(
            db_session, identity.id, populate_existing=True
        )
        assert row.phone_verified is True
        assert row.email_verified is True


class TestOrderRecordDB:

    @pytest.mark.asyncio
    async def test_counts_and_lists_by_phone(
        self, db_session: AsyncSession, make_order
    ):
        await make_order(phone="+15550002222", order_number="ORD-1")
        await make_order(phone="+15550002222", order_number="ORD-2")
        await make_order(phone="+15550003333", order_number="ORD-3")

        assert await order_record_db.count_for_phone(db_session, "+15550002222") == 2
        assert await order_record_db.count_for_phone(db_session, "+15550004444") == 0

        orders = await order_record_db.list_for_phone(db_session, "+15550002222")
        assert {o.order_number for o in orders} == {"ORD-1", "ORD-2"}

    @pytest.mark.asyncio
    async def test_get_for_phone_checks_ownership(
        self, db_session: AsyncSession, make_order
    ):
        await make_order(phone="+15550002222", order_number="ORD-1")

        assert await order_record_db.get_for_phone(
            db_session, "ORD-1", "+15550002222"
        )
        assert (
            await order_record_db.get_for_phone(db_session, "ORD-1", "+15550003333")
            is None
        )
