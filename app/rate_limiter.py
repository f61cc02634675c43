"""
Fixed-window rate limiting
Counters live in Redis when REDIS_URL is configured and reachable, otherwise in process memory
"""

import logging
import os
import time
from threading import Lock
from typing import Callable, Optional

import redis
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."

# Redis connection (None until first use, False when unavailable)
redis_client = None

# In-memory fallback: {key: {"count": int, "reset_time": float}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_CLEANUP_INTERVAL = 5 * 60  # Seconds
last_cleanup_time = 0.0


class RateLimitExceeded(HTTPException):
    def __init__(self, retry_after: int):
        super().__init__(
            status_code=429,
            detail=RATE_LIMIT_MESSAGE,
            headers={"Retry-After": str(retry_after)},
        )


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client.
    Returns None when REDIS_URL is not set or the server cannot be reached.
    """
    global redis_client

    if redis_client is None:
        redis_url = os.getenv("REDIS_URL")
        if not redis_url:
            redis_client = False
            logger.info("ℹ️ REDIS_URL not set - rate limiting uses in-memory counters")
        else:
            try:
                client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                )
                client.ping()
                redis_client = client
                logger.info("✅ Redis connected for rate limiting")
            except Exception as e:
                logger.error(f"❌ Failed to connect to Redis: {e}")
                logger.warning("⚠️ Falling back to in-memory rate limiting")
                redis_client = False

    return redis_client or None


def cleanup_expired_cache(now: Optional[float] = None):
    """Remove expired windows from the memory cache, at most once per cleanup interval"""
    global last_cleanup_time
    now = now if now is not None else time.time()

    if now - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if v["reset_time"] < now]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = now


def check_memory_rate_limit(key: str, limit: int, window_seconds: int) -> tuple[bool, int, float]:
    """
    Count one request against the in-memory window for `key`.

    Returns:
        Tuple of (is_allowed, remaining, reset_time)
    """
    now = time.time()
    cleanup_expired_cache(now)

    with cache_lock:
        entry = memory_cache.get(key)

        if entry is None or entry["reset_time"] < now:
            entry = {"count": 1, "reset_time": now + window_seconds}
            memory_cache[key] = entry
            return True, limit - 1, entry["reset_time"]

        if entry["count"] >= limit:
            return False, 0, entry["reset_time"]

        entry["count"] += 1
        return True, limit - entry["count"], entry["reset_time"]


def check_redis_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, float]:
    """INCR + EXPIRE on the first hit of a window"""
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()

    if ttl is None or ttl < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds

    reset_time = time.time() + ttl
    if count > limit:
        return False, 0, reset_time
    return True, limit - count, reset_time


def check_rate_limit(key: str, limit: int, window_seconds: int) -> tuple[bool, int, float]:
    """
    Check and count a request for `key`.

    Returns:
        Tuple of (is_allowed, remaining, reset_time as a unix timestamp)
    """
    client = get_redis_client()
    if client is not None:
        try:
            return check_redis_rate_limit(f"rate_limit:{key}", limit, window_seconds, client)
        except Exception as e:
            logger.warning(f"⚠️ Redis rate limit failed, using memory: {e}")

    return check_memory_rate_limit(key, limit, window_seconds)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def api_key_identifier(request: Request) -> str:
    """Characters 7-23 of the Authorization header (the start of the API key)"""
    auth_header = request.headers.get("Authorization")
    return auth_header[7:23] if auth_header else "anon"


def enforce_rate_limit(key: str, limit: int, window_seconds: int) -> None:
    is_allowed, remaining, reset_time = check_rate_limit(key, limit, window_seconds)
    if not is_allowed:
        retry_after = max(1, int(reset_time - time.time()))
        logger.warning(f"🚫 Rate limit exceeded for {key} ({limit}/{window_seconds}s)")
        raise RateLimitExceeded(retry_after)


def create_rate_limiter(
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
    identifier: Optional[Callable[[Request], str]] = None,
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        sign_rate_limiter = create_rate_limiter(limit=3, window_seconds=60, key_prefix="contract_sign")

        @router.post("/sign/{token}")
        async def sign(token: str, _: None = Depends(sign_rate_limiter)):
            ...
    """

    async def rate_limiter(request: Request):
        if identifier is not None:
            suffix = identifier(request)
        elif use_ip:
            suffix = get_client_ip(request)
        else:
            suffix = "global"
        enforce_rate_limit(f"{key_prefix}:{suffix}", limit, window_seconds)

    return rate_limiter


def reset_rate_limits():
    """Clear in-memory counters"""
    with cache_lock:
        memory_cache.clear()
