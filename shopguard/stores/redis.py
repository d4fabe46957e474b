"""Redis store for the trust badge cache and job locks.

Redis is optional: the API and cron jobs run without it (see is_redis_ready()).

Keys:
- trust:badge:{shop_id}  JSON badge payload, TTL from settings (default 5 minutes)
- lock:payout_sweep      held by a payout sweep, 10 minutes
- lock:escrow_retry      held by a pending-escrow retry run, 5 minutes
"""

import json
import logging
from typing import Any

import redis.asyncio as redis

from shopguard.settings import get_settings

# Lock TTLs (in seconds)
TTL_PAYOUT_SWEEP_LOCK = 600
TTL_ESCROW_RETRY_LOCK = 300

# Key prefixes
PREFIX_TRUST_BADGE = "trust:badge:"
PREFIX_LOCK = "lock:"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Connect and ping; the client is only kept if the ping succeeds."""
    global _redis
    client = redis.from_url(
        get_settings().redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    await client.ping()
    _redis = client
    logger.info("Redis connected")


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def is_redis_ready() -> bool:
    """True once init_redis() has succeeded."""
    return _redis is not None


def _client() -> redis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


# ============================================================
# Trust badge cache
# ============================================================


async def get_trust_badge_cache(shop_id: int) -> dict[str, Any] | None:
    raw = await _client().get(f"{PREFIX_TRUST_BADGE}{shop_id}")
    return json.loads(raw) if raw else None


async def set_trust_badge_cache(shop_id: int, payload: dict[str, Any]) -> None:
    """Cache a badge payload; a TTL of 0 disables caching."""
    ttl = get_settings().trust_badge_cache_ttl
    if ttl <= 0:
        return
    await _client().setex(f"{PREFIX_TRUST_BADGE}{shop_id}", ttl, json.dumps(payload))


async def invalidate_trust_badge_cache(shop_id: int) -> None:
    """Drop the cached badge (shop score changed)."""
    await _client().delete(f"{PREFIX_TRUST_BADGE}{shop_id}")


# ============================================================
# Job locks
# ============================================================


async def acquire_lock(key: str, ttl: int = TTL_PAYOUT_SWEEP_LOCK) -> bool:
    """SET NX lock so overlapping job runs skip instead of racing.

    Args:
        key: Lock name ("payout_sweep", "escrow_retry").
        ttl: Expiry in seconds, so a crashed run cannot hold the lock forever.

    Returns:
        True if this caller now holds the lock.
    """
    result = await _client().set(f"{PREFIX_LOCK}{key}", "1", nx=True, ex=ttl)
    return result is not None


async def release_lock(key: str) -> None:
    await _client().delete(f"{PREFIX_LOCK}{key}")
