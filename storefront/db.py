"""
Database Module - Upstash Redis Client

Provides the singleton sync Upstash Redis client used to persist cart
snapshots. Cart mutations are synchronous, so snapshot writes use the
sync client rather than the asyncio one.
"""

import os
from typing import Optional

from upstash_redis import Redis

from storefront.errors import ERROR_REDIS_NOT_CONFIGURED


# Upstash Redis - standard env var names per docs
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")


_sync_redis_client: Optional[Redis] = None


def get_redis_sync() -> Redis:
    """
    Get sync Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _sync_redis_client

    if _sync_redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise ValueError(ERROR_REDIS_NOT_CONFIGURED)
        _sync_redis_client = Redis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _sync_redis_client


# Redis key prefixes for organization
class RedisKeys:
    """Redis key prefixes for cart data."""

    # Fixed cart-store name; one snapshot per storefront client
    CART_STORE = "storefront-cart"
    CART = "cart:"  # cart:{owner}

    @staticmethod
    def cart_key(owner: Optional[str] = None) -> str:
        if not owner:
            return RedisKeys.CART_STORE
        return f"{RedisKeys.CART}{owner}"


# TTL constants (in seconds)
class TTL:
    """Time-to-live constants for Redis keys."""

    CART = 86400  # 24 hours
