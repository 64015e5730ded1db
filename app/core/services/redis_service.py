"""
Redis service for shared rate limiting state.

This module provides a singleton Redis client for async operations. The
rate limiter uses it to keep per-contact sliding windows consistent across
processes.
"""

from __future__ import annotations

from redis.asyncio import Redis

from app.core.config import redis_logger, settings


class RedisService:
    """
    Singleton Redis service for async Redis operations.

    Every operation fails soft: when the client is missing or Redis errors,
    the failure is logged and a neutral value (None/False) is returned so the
    caller can decide how to degrade.

    Example:
        >>> await RedisService.init("redis://localhost:6379/0")
        >>> await RedisService.sliding_window_hit(
        ...     "rate_limit:otp:+15550001111", 900_000, 3, now_ms, member
        ... )
        >>> await RedisService.aclose()
    """

    _client: Redis | None = None
    _url: str = settings.REDIS_URL

    @classmethod
    async def init(cls, url: str | None = None) -> None:
        """
        Initialize the Redis client, closing any previous one first.

        Args:
            url: The Redis connection URL. If None, uses settings.REDIS_URL.
        """
        if url is not None:
            cls._url = url

        await cls.aclose()

        try:
            cls._client = Redis.from_url(
                cls._url,
                encoding="utf-8",
                decode_responses=False,  # We handle decoding manually
            )
            redis_logger.info(f"Redis client initialized with URL: {cls._url}")
        except Exception as e:
            redis_logger.error(f"Failed to initialize Redis client: {str(e)}")
            raise

    @classmethod
    async def aclose(cls) -> None:
        """Close the Redis client. Safe to call when not initialized."""
        if cls._client is not None:
            try:
                await cls._client.aclose()
                redis_logger.info("Redis client closed successfully")
            except Exception as e:
                redis_logger.warning(f"Error closing Redis client: {str(e)}")
            finally:
                cls._client = None

    @classmethod
    async def ping(cls) -> bool:
        """
        Ping the Redis server to check connectivity.

        Returns:
            bool: True if ping succeeds, False otherwise.
        """
        if cls._client is None:
            redis_logger.warning("Redis ping attempted but client not initialized")
            return False

        try:
            result = await cls._client.ping()  # type: ignore[misc]
            return bool(result)
        except Exception as e:
            redis_logger.error(f"Redis ping failed: {str(e)}")
            return False

    @classmethod
    async def delete(cls, key: str) -> bool:
        """
        Delete a key from Redis.

        Returns:
            bool: True if the key was deleted, False otherwise.
        """
        if cls._client is None:
            redis_logger.warning(
                f"Redis delete({key}) attempted but client not initialized"
            )
            return False

        try:
            result = await cls._client.delete(key)
            return result > 0
        except Exception as e:
            redis_logger.error(f"Redis delete({key}) failed: {str(e)}")
            return False

    # Atomic sliding window: drop old entries, count, record only if allowed.
    # The window is inclusive: an event exactly window_ms old still counts.
    # KEYS[1] = window key
    # ARGV = now_ms, window_ms, limit, member
    # Returns: {allowed (0/1), count_after, oldest_ms}
    _SLIDING_WINDOW_SCRIPT = """
    local now = tonumber(ARGV[1])
    local window = tonumber(ARGV[2])
    local limit = tonumber(ARGV[3])
    redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', '(' .. (now - window))
    local count = redis.call('ZCARD', KEYS[1])
    if count >= limit then
        local oldest = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
        return {0, count, tonumber(oldest[2]) or now}
    end
    redis.call('ZADD', KEYS[1], now, ARGV[4])
    redis.call('PEXPIRE', KEYS[1], window + 1)
    local oldest = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
    return {1, count + 1, tonumber(oldest[2]) or now}
    """

    @classmethod
    async def sliding_window_hit(
        cls,
        key: str,
        window_ms: int,
        limit: int,
        now_ms: int,
        member: str,
    ) -> tuple[bool, int, int] | None:
        """
        Check a sliding window and record the event only if it is allowed.

        Runs as one Lua script, so concurrent callers for the same key are
        serialized by Redis.

        Args:
            key: The window key.
            window_ms: Window length in milliseconds.
            limit: Events allowed inside the window.
            now_ms: Current time in epoch milliseconds.
            member: Unique member recorded for this event.

        Returns:
            Tuple of (allowed, count, oldest_ms) or None if Redis is unavailable.
        """
        if cls._client is None:
            redis_logger.warning(
                "Redis sliding_window_hit attempted but client not initialized"
            )
            return None

        try:
            result = await cls._client.eval(  # type: ignore[misc]
                cls._SLIDING_WINDOW_SCRIPT,
                1,
                key,
                str(now_ms),
                str(window_ms),
                str(limit),
                member,
            )
            allowed, count, oldest = bool(int(result[0])), int(result[1]), int(result[2])
            redis_logger.debug(
                f"Redis sliding_window_hit allowed={allowed}, count={count}"
            )
            return (allowed, count, oldest)
        except Exception as e:
            redis_logger.error(f"Redis sliding_window_hit failed: {str(e)}")
            return None


__all__ = ["RedisService"]
