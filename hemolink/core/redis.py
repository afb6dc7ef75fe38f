# hemolink/core/redis.py
"""
Redis connection and caching utilities.
Redis is used for:
- Debouncing repeated shortage / expiry alerts

The app should boot even if Redis is unavailable (degraded mode).
"""

import logging
from functools import lru_cache
from typing import Optional

import redis

from hemolink.core.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client instance.
    Returns None if Redis is not configured or unavailable.
    """
    settings = get_settings()

    if not settings.redis_url:
        logger.warning("REDIS_URL not set. Alert debouncing will be disabled.")
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Test connection
        client.ping()
        logger.info("Redis connection established successfully.")
        return client
    except Exception as e:
        logger.warning(
            f"Failed to connect to Redis: {e}. Running in degraded mode (no debouncing)."
        )
        return None


def cache_set_if_absent(key: str, value: str, ttl: int) -> bool:
    """
    Atomically set key with TTL (seconds) only if it does not exist.

    Returns True when the key was set, or when Redis is unavailable
    (callers treat "no cache" as "go ahead").
    """
    client = get_redis_client()
    if not client:
        return True
    try:
        return bool(client.set(key, value, ex=ttl, nx=True))
    except Exception as e:
        logger.warning(f"Redis SET NX error for key '{key}': {e}")
        return True


def cache_delete(key: str) -> bool:
    """Delete key from cache. Returns False if Redis unavailable."""
    client = get_redis_client()
    if not client:
        return False
    try:
        client.delete(key)
        return True
    except Exception as e:
        logger.warning(f"Redis DELETE error for key '{key}': {e}")
        return False
