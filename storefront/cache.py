"""
Redis caching utilities for the Storefront service.

Caches read-mostly catalog and loyalty data. Every cache failure is logged
and treated as a miss so the service keeps working without Redis.
"""
import json
import logging
from typing import Optional, Any
import redis

from .config import REDIS_URL, CACHE_ENABLED

logger = logging.getLogger(__name__)

redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# Cache TTLs (in seconds)
PRODUCT_CACHE_TTL = 300  # 5 minutes
TIERS_CACHE_TTL = 1800  # 30 minutes


def product_key(product_ref) -> str:
    return f"product:{product_ref}"


TIERS_KEY = "rewards:tiers"


def get_cache(key: str) -> Optional[Any]:
    """
    Get a value from Redis cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found
    """
    if not CACHE_ENABLED:
        return None
    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except Exception as e:
        logger.warning(f"Cache get error for '{key}': {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set a value in Redis cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time to live in seconds

    Returns:
        True if successful, False otherwise
    """
    if not CACHE_ENABLED:
        return False
    try:
        redis_client.setex(key, ttl, json.dumps(value, default=str))
        return True
    except Exception as e:
        logger.warning(f"Cache set error for '{key}': {e}")
        return False


def delete_cache(key: str) -> bool:
    """Delete a key from Redis cache."""
    if not CACHE_ENABLED:
        return False
    try:
        redis_client.delete(key)
        return True
    except Exception as e:
        logger.warning(f"Cache delete error for '{key}': {e}")
        return False


def delete_pattern(pattern: str) -> bool:
    """
    Delete all keys matching a pattern.

    Args:
        pattern: Pattern to match (e.g., "product:*")

    Returns:
        True if successful, False otherwise
    """
    if not CACHE_ENABLED:
        return False
    try:
        keys = redis_client.keys(pattern)
        if keys:
            redis_client.delete(*keys)
        return True
    except Exception as e:
        logger.warning(f"Cache delete pattern error for '{pattern}': {e}")
        return False
