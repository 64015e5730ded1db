"""
Sliding-window rate limiting for OTP requests.

This module counts challenge-creation events per contact inside a sliding
window. Two interchangeable backends are provided: an in-memory backend for
single-process deployments and tests, and a Redis backend for deployments
with several workers. Both check and record in one atomic step per key.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
import time
from typing import Callable, Literal
import uuid

from app.core.config import rate_limit_logger, settings
from app.core.exceptions.types import RateLimitExceededException
from app.core.services.redis_service import RedisService
from app.core.utils import mask_contact


@dataclass
class RateLimitResult:
    """
    Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed.
        remaining: Number of remaining requests in the current window.
        limit: The maximum number of requests allowed.
        reset_at: When the oldest counted request leaves the window.
        retry_after: Seconds the client is told to wait (only if not allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime
    retry_after: int | None = None


class RateLimitBackend(ABC):
    """
    Abstract base class for rate limit backends.

    A denied call is never recorded, so hammering a blocked key does not
    extend its block.
    """

    @abstractmethod
    async def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        """
        Check the window for `key` and record this event if it is allowed.

        Args:
            key: The rate limit key.
            limit: Maximum number of events allowed in the window.
            window: Window length in seconds.

        Returns:
            RateLimitResult with the check outcome.
        """
        pass

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget every recorded event for a key."""
        pass


class MemoryBackend(RateLimitBackend):
    """
    In-memory sliding window backed by a deque of timestamps per key.

    Calls for the same key are serialized with a per-key `asyncio.Lock`.
    The clock is injectable so tests can move time forward.

    Note:
        Data is lost on application restart and is not shared between
        processes. Use RedisBackend for multi-worker deployments.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._max_window = 0
        self._last_sweep = clock()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _sweep(self, now: float) -> None:
        """Forget keys whose newest event is older than every window in use."""
        horizon = now - self._max_window
        for key in set(self._events) | set(self._locks):
            events = self._events.get(key)
            if events and events[-1] >= horizon:
                continue
            self._events.pop(key, None)
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        self._last_sweep = now

    async def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        async with self._lock_for(key):
            now = self._clock()
            self._max_window = max(self._max_window, window)
            if now - self._last_sweep >= self._max_window:
                self._sweep(now)
            events = self._events.setdefault(key, deque())

            while events and events[0] < now - window:
                events.popleft()

            if len(events) >= limit:
                reset_at = datetime.fromtimestamp(events[0] + window, tz=timezone.utc)
                rate_limit_logger.warning(
                    f"Rate limit window full ({len(events)}/{limit}), retry after: {window}s"
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    limit=limit,
                    reset_at=reset_at,
                    retry_after=window,
                )

            events.append(now)
            reset_at = datetime.fromtimestamp(events[0] + window, tz=timezone.utc)
            remaining = limit - len(events)
            rate_limit_logger.debug(
                f"Rate limit check passed, remaining: {remaining}"
            )
            return RateLimitResult(
                allowed=True,
                remaining=remaining,
                limit=limit,
                reset_at=reset_at,
            )

    async def reset(self, key: str) -> None:
        async with self._lock_for(key):
            self._events.pop(key, None)
        self._locks.pop(key, None)
        rate_limit_logger.debug(f"Rate limit reset for key: {key}")


class RedisBackend(RateLimitBackend):
    """
    Redis sorted-set sliding window shared by every worker.

    When Redis is unavailable the request is allowed and a warning is
    logged, matching the rest of the Redis-backed features.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    async def hit(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = window * 1000

        outcome = await RedisService.sliding_window_hit(
            key,
            window_ms=window_ms,
            limit=limit,
            now_ms=now_ms,
            member=f"{now_ms}:{uuid.uuid4().hex}",
        )

        if outcome is None:
            rate_limit_logger.warning(
                "Redis error during rate limit check, allowing request"
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit - 1,
                limit=limit,
                reset_at=datetime.fromtimestamp(now + window, tz=timezone.utc),
            )

        allowed, count, oldest_ms = outcome
        reset_at = datetime.fromtimestamp(
            (oldest_ms + window_ms) / 1000, tz=timezone.utc
        )

        if not allowed:
            rate_limit_logger.warning(
                f"Rate limit window full ({count}/{limit}), retry after: {window}s"
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=limit,
                reset_at=reset_at,
                retry_after=window,
            )

        return RateLimitResult(
            allowed=True,
            remaining=max(0, limit - count),
            limit=limit,
            reset_at=reset_at,
        )

    async def reset(self, key: str) -> None:
        await RedisService.delete(key)
        rate_limit_logger.debug(f"Rate limit reset for key: {key}")


def format_rate_limit_key(contact_key: str, scope: str = "otp") -> str:
    """
    Format a rate limit key with consistent structure.

    Example:
        >>> format_rate_limit_key("+15550001111")
        'rate_limit:otp:+15550001111'
    """
    return f"rate_limit:{scope}:{contact_key}"


class RateLimiter:
    """
    Per-contact limiter for OTP challenge creation.

    Args:
        backend: "memory", "redis", or a backend instance.
                 If None, uses settings.RATE_LIMIT_BACKEND.

    Example:
        >>> limiter = RateLimiter(backend="memory")
        >>> result = await limiter.check_and_record("+15550001111", 15, 3)
        >>> if not result.allowed:
        ...     raise RateLimitExceededException(retry_after=result.retry_after)
    """

    def __init__(
        self,
        backend: Literal["memory", "redis"] | RateLimitBackend | None = None,
    ):
        if backend is None:
            backend = settings.RATE_LIMIT_BACKEND

        if isinstance(backend, RateLimitBackend):
            self._backend = backend
        elif backend == "redis":
            self._backend = RedisBackend()
        else:
            self._backend = MemoryBackend()

        rate_limit_logger.debug(
            f"RateLimiter initialized with {type(self._backend).__name__}"
        )

    async def check_and_record(
        self,
        contact_key: str,
        window_minutes: int,
        max_requests: int,
    ) -> RateLimitResult:
        """
        Check whether `contact_key` may create another challenge and record it if so.

        Args:
            contact_key: Phone or email the challenge targets.
            window_minutes: Sliding window length in minutes.
            max_requests: Challenges allowed inside the window.

        Returns:
            RateLimitResult. On denial `retry_after` is the full window in seconds.
        """
        return await self._backend.hit(
            format_rate_limit_key(contact_key),
            limit=max_requests,
            window=window_minutes * 60,
        )

    async def enforce(
        self,
        contact_key: str,
        window_minutes: int | None = None,
        max_requests: int | None = None,
    ) -> RateLimitResult:
        """
        Like `check_and_record`, but raise when the request is denied.

        Raises:
            RateLimitExceededException: With `retry_after` set to the window length.
        """
        window_minutes = window_minutes or settings.OTP_RATE_LIMIT_WINDOW_MINUTES
        max_requests = max_requests or settings.OTP_RATE_LIMIT_MAX_REQUESTS

        result = await self.check_and_record(contact_key, window_minutes, max_requests)
        if not result.allowed:
            rate_limit_logger.info(
                f"OTP request blocked for {mask_contact(contact_key)}"
            )
            raise RateLimitExceededException(
                message=f"Too many OTP requests. Try again in {result.retry_after} seconds.",
                retry_after=result.retry_after,
            )
        return result

    async def reset(self, contact_key: str) -> None:
        await self._backend.reset(format_rate_limit_key(contact_key))


# Process-wide limiter; the memory backend keeps its windows on this instance
otp_rate_limiter = RateLimiter()


__all__ = [
    "RateLimitResult",
    "RateLimitBackend",
    "MemoryBackend",
    "RedisBackend",
    "RateLimiter",
    "format_rate_limit_key",
    "otp_rate_limiter",
]
