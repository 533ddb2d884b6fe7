"""Redis client for dashboard caching and notification badge counters.

Redis is optional. Every helper degrades to a no-op (or ``None``) when the
server is unreachable or ``REDIS_ENABLED`` is false, and callers fall back
to the database.
"""
import json
import time
from datetime import timedelta
from typing import Any, Optional

import redis

from civic_portal.core.logging import get_logger
from civic_portal.core.config import settings

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None
_last_failure: Optional[float] = None

# Seconds to wait before retrying an unreachable server
RETRY_AFTER = 30


def get_redis_client() -> Optional[redis.Redis]:
    """Shared client, or None when Redis is disabled or unreachable.

    A failed connection is not retried for ``RETRY_AFTER`` seconds so that
    requests do not each pay the connect timeout.
    """
    global _redis_client, _last_failure

    if not settings.redis_enabled:
        return None
    if _redis_client is not None:
        return _redis_client
    if _last_failure is not None and time.monotonic() - _last_failure < RETRY_AFTER:
        return None

    logger.info(f"Connecting to Redis at {settings.redis_host}:{settings.redis_port}")
    pool = redis.ConnectionPool(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
        max_connections=50,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    client = redis.Redis(connection_pool=pool)
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable, continuing without it: {e}")
        pool.disconnect()
        _last_failure = time.monotonic()
        return None

    _redis_client = client
    _last_failure = None
    return _redis_client


class CacheManager:
    """Redis-backed cache for expensive dashboard aggregates.

    Example:
        >>> cache = CacheManager(ttl_minutes=5)
        >>> cache.set("admin_metrics", {"total_complaints": 120})
        >>> metrics = cache.get("admin_metrics")
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        ttl_minutes: Optional[int] = None,
        key_prefix: str = "cache:"
    ):
        self.redis = redis_client or get_redis_client()
        self.ttl = timedelta(minutes=ttl_minutes or settings.cache_ttl_minutes)
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    def get(self, key: str) -> Optional[Any]:
        """Get cached value, or None if not found, expired or Redis is down."""
        if not self.enabled:
            return None
        try:
            data = self.redis.get(self._make_key(key))
            if data:
                logger.debug(f"Cache hit: {key}")
                return json.loads(data)
            logger.debug(f"Cache miss: {key}")
            return None
        except redis.RedisError as e:
            logger.error(f"Error retrieving cache {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl_minutes: Optional[int] = None) -> bool:
        """Set cached value with TTL. Value must be JSON-serializable."""
        if not self.enabled:
            return False
        try:
            ttl = timedelta(minutes=ttl_minutes) if ttl_minutes else self.ttl
            self.redis.setex(self._make_key(key), ttl, json.dumps(value, default=str))
            logger.debug(f"Cache set: {key} (TTL: {ttl})")
            return True
        except redis.RedisError as e:
            logger.error(f"Error setting cache {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self.redis.delete(self._make_key(key)))
        except redis.RedisError as e:
            logger.error(f"Error deleting cache {key}: {e}")
            return False

    def clear_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern (e.g. ``"dashboard:*"``).

        Returns:
            Number of keys deleted
        """
        if not self.enabled:
            return 0
        try:
            keys = list(self.redis.scan_iter(match=self._make_key(pattern)))
            if keys:
                deleted = self.redis.delete(*keys)
                logger.info(f"Cleared {deleted} cache entries matching: {pattern}")
                return deleted
            return 0
        except redis.RedisError as e:
            logger.error(f"Error clearing cache pattern {pattern}: {e}")
            return 0


class BadgeCounter:
    """Per-user unread notification counter.

    The counter only moves while its key exists. A missing key means the
    count is unknown and is re-seeded from the database by the next reader,
    so rows written while Redis was away are never hidden.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: str = "badge:"):
        self.redis = redis_client or get_redis_client()
        self.key_prefix = key_prefix

    def _make_key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    def adjust(self, user_id: str, amount: int) -> Optional[int]:
        """Add ``amount`` to an existing counter, never going below zero.

        Returns:
            The new count, or None when the counter is unknown or Redis is down
        """
        if not self.enabled:
            return None
        key = self._make_key(user_id)

        def apply(pipe):
            current = pipe.get(key)
            if current is None:
                return None
            value = max(0, int(current) + amount)
            pipe.multi()
            pipe.set(key, value)
            return value

        try:
            return self.redis.transaction(apply, key, value_from_callable=True)
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Badge update failed for {user_id}: {e}")
            self.clear(user_id)
            return None

    def increment(self, user_id: str, amount: int = 1) -> Optional[int]:
        return self.adjust(user_id, amount)

    def decrement(self, user_id: str, amount: int = 1) -> Optional[int]:
        return self.adjust(user_id, -amount)

    def get(self, user_id: str) -> Optional[int]:
        """Current count, or None when unknown (caller should recount)."""
        if not self.enabled:
            return None
        try:
            value = self.redis.get(self._make_key(user_id))
            return max(0, int(value)) if value is not None else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Badge read failed for {user_id}: {e}")
            return None

    def reset(self, user_id: str, value: int = 0) -> None:
        if not self.enabled:
            return
        try:
            self.redis.set(self._make_key(user_id), max(0, value))
        except redis.RedisError as e:
            logger.warning(f"Badge reset failed for {user_id}: {e}")

    def clear(self, user_id: str) -> None:
        """Forget the counter so the next read recounts."""
        if not self.enabled:
            return
        try:
            self.redis.delete(self._make_key(user_id))
        except redis.RedisError as e:
            logger.warning(f"Badge clear failed for {user_id}: {e}")
