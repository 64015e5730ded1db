"""
Unit tests for the OTP rate limiter.

The memory backend takes an injectable clock so the sliding window can be
moved forward without sleeping.
"""

from unittest.mock import AsyncMock, patch

import pytest


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Tests for MemoryBackend
# ============================================================================


class TestMemoryBackend:

    @pytest.mark.asyncio
    async def test_first_request_allowed(self):
        from app.core.services.rate_limit import MemoryBackend

        backend = MemoryBackend(clock=FakeClock())
        result = await backend.hit("key", limit=3, window=900)

        assert result.allowed is True
        assert result.remaining == 2
        assert result.limit == 3

    @pytest.mark.asyncio
    async def test_fourth_request_in_window_denied(self):
        from app.core.services.rate_limit import MemoryBackend

        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        for _ in range(3):
            assert (await backend.hit("key", limit=3, window=900)).allowed
            clock.advance(60)

        result = await backend.hit("key", limit=3, window=900)

        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after == 900

    @pytest.mark.asyncio
    async def test_denied_request_is_not_recorded(self):
        from app.core.services.rate_limit import MemoryBackend

        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        for _ in range(3):
            await backend.hit("key", limit=3, window=900)
        for _ in range(5):
            assert not (await backend.hit("key", limit=3, window=900)).allowed

        # Only the three allowed events occupy the window
        clock.advance(901)
        result = await backend.hit("key", limit=3, window=900)
        assert result.allowed is True
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_window_slides(self):
        from app.core.services.rate_limit import MemoryBackend

        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        await backend.hit("key", limit=3, window=900)
        clock.advance(600)
        await backend.hit("key", limit=3, window=900)
        await backend.hit("key", limit=3, window=900)
        assert not (await backend.hit("key", limit=3, window=900)).allowed

        # First event leaves the window, the other two remain
        clock.advance(301)
        assert (await backend.hit("key", limit=3, window=900)).allowed
        assert not (await backend.hit("key", limit=3, window=900)).allowed

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        from app.core.services.rate_limit import MemoryBackend

        backend = MemoryBackend(clock=FakeClock())
        for _ in range(3):
            await backend.hit("a", limit=3, window=900)

        assert not (await backend.hit("a", limit=3, window=900)).allowed
        assert (await backend.hit("b", limit=3, window=900)).allowed

    @pytest.mark.asyncio
    async def test_reset_clears_key(self):
        from app.core.services.rate_limit import MemoryBackend

        backend = MemoryBackend(clock=FakeClock())
        for _ in range(3):
            await backend.hit("key", limit=3, window=900)
        await backend.reset("key")

        assert (await backend.hit("key", limit=3, window=900)).allowed

    @pytest.mark.asyncio
    async def test_event_exactly_one_window_old_still_counts(self):
        from app.core.services.rate_limit import MemoryBackend

        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        for _ in range(3):
            await backend.hit("key", limit=3, window=900)

        clock.advance(900)
        assert not (await backend.hit("key", limit=3, window=900)).allowed

        clock.advance(1)
        assert (await backend.hit("key", limit=3, window=900)).allowed

    @pytest.mark.asyncio
    async def test_idle_keys_are_forgotten(self):
        from app.core.services.rate_limit import MemoryBackend

        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        for i in range(1000):
            await backend.hit(f"contact-{i}", limit=3, window=900)

        clock.advance(901)
        await backend.hit("latest", limit=3, window=900)

        assert set(backend._events) == {"latest"}
        assert set(backend._locks) == {"latest"}

    @pytest.mark.asyncio
    async def test_sweep_keeps_keys_inside_their_window(self):
        from app.core.services.rate_limit import MemoryBackend

        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        await backend.hit("idle", limit=3, window=900)
        clock.advance(600)
        for _ in range(3):
            await backend.hit("busy", limit=3, window=900)

        clock.advance(400)
        await backend.hit("other", limit=3, window=900)

        assert "idle" not in backend._events
        assert not (await backend.hit("busy", limit=3, window=900)).allowed


# ============================================================================
# Tests for RedisBackend
# ============================================================================


class TestRedisBackend:

    @pytest.mark.asyncio
    async def test_allows_when_redis_unavailable(self):
        from app.core.services.rate_limit import RedisBackend

        with patch(
            "app.core.services.rate_limit.RedisService.sliding_window_hit",
            new_callable=AsyncMock,
            return_value=None,
        ):
            result = await RedisBackend().hit("key", limit=3, window=900)

        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_denied_by_script(self):
        from app.core.services.rate_limit import RedisBackend

        with patch(
            "app.core.services.rate_limit.RedisService.sliding_window_hit",
            new_callable=AsyncMock,
            return_value=(False, 3, 1_000_000),
        ):
            result = await RedisBackend().hit("key", limit=3, window=900)

        assert result.allowed is False
        assert result.retry_after == 900

    @pytest.mark.asyncio
    async def test_allowed_by_script(self):
        from app.core.services.rate_limit import RedisBackend

        with patch(
            "app.core.services.rate_limit.RedisService.sliding_window_hit",
            new_callable=AsyncMock,
            return_value=(True, 2, 1_000_000),
        ) as mock_hit:
            result = await RedisBackend().hit("key", limit=3, window=900)

        assert result.allowed is True
        assert result.remaining == 1
        assert mock_hit.call_args.kwargs["window_ms"] == 900_000


# ============================================================================
# Tests for the Redis sliding window script
# ============================================================================


class TestSlidingWindowScript:

    @pytest.mark.asyncio
    async def test_window_edge_matches_memory_backend(self):
        from app.core.services.redis_service import RedisService

        mock_client = AsyncMock()
        mock_client.eval.return_value = [1, 1, 1_000_000]

        with patch.object(RedisService, "_client", mock_client):
            result = await RedisService.sliding_window_hit(
                "rate_limit:otp:key",
                window_ms=900_000,
                limit=3,
                now_ms=1_000_000,
                member="event-1",
            )

        assert result == (True, 1, 1_000_000)
        args = mock_client.eval.call_args.args
        # Exclusive trim bound keeps an event exactly one window old
        assert "'(' .. (now - window)" in args[0]
        assert args[1:] == (1, "rate_limit:otp:key", "1000000", "900000", "3", "event-1")

    @pytest.mark.asyncio
    async def test_returns_none_when_script_fails(self):
        from app.core.services.redis_service import RedisService

        mock_client = AsyncMock()
        mock_client.eval.side_effect = ConnectionError("redis down")

        with patch.object(RedisService, "_client", mock_client):
            result = await RedisService.sliding_window_hit(
                "rate_limit:otp:key",
                window_ms=900_000,
                limit=3,
                now_ms=1_000_000,
                member="event-1",
            )

        assert result is None


# ============================================================================
# Tests for RateLimiter
# ============================================================================


class TestRateLimiter:

    def test_key_format(self):
        from app.core.services.rate_limit import format_rate_limit_key

        assert format_rate_limit_key("+15550001111") == "rate_limit:otp:+15550001111"

    @pytest.mark.asyncio
    async def test_enforce_raises_after_limit(self):
        from app.core.exceptions.types import RateLimitExceededException
        from app.core.services.rate_limit import MemoryBackend, RateLimiter

        limiter = RateLimiter(backend=MemoryBackend(clock=FakeClock()))
        for _ in range(3):
            await limiter.enforce("+15550001111", window_minutes=15, max_requests=3)

        with pytest.raises(RateLimitExceededException) as exc_info:
            await limiter.enforce("+15550001111", window_minutes=15, max_requests=3)

        assert exc_info.value.retry_after == 900
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_enforce_allowed_after_window(self):
        from app.core.services.rate_limit import MemoryBackend, RateLimiter

        clock = FakeClock()
        limiter = RateLimiter(backend=MemoryBackend(clock=clock))
        for _ in range(3):
            await limiter.enforce("+15550001111", window_minutes=15, max_requests=3)

        clock.advance(15 * 60 + 1)
        result = await limiter.enforce(
            "+15550001111", window_minutes=15, max_requests=3
        )
        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_higher_ceiling_for_resends(self):
        from app.core.services.rate_limit import MemoryBackend, RateLimiter

        limiter = RateLimiter(backend=MemoryBackend(clock=FakeClock()))
        for _ in range(3):
            await limiter.enforce("+15550001111", window_minutes=15, max_requests=3)

        result = await limiter.enforce(
            "+15550001111", window_minutes=15, max_requests=5
        )
        assert result.allowed is True
        assert result.remaining == 1

    def test_backend_selection(self):
        from app.core.services.rate_limit import (
            MemoryBackend,
            RateLimiter,
            RedisBackend,
        )

        assert isinstance(RateLimiter(backend="memory")._backend, MemoryBackend)
        assert isinstance(RateLimiter(backend="redis")._backend, RedisBackend)
