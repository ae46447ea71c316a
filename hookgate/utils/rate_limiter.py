"""
Redis-based rate limiter for the webhook endpoint.
Uses a sliding window (sorted set per key). Redis failures fail open: rate
limiting is a courtesy to the gateway, authentication happens in the pipeline.
"""
import logging
import time
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
DEFAULT_IP_LIMIT = 100  # requests per minute per source IP

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from hookgate.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def check_rate_limit(
    key: str,
    limit: int,
    window: int = WINDOW_SECONDS,
) -> tuple[bool, Optional[int]]:
    """
    Check if a request is within rate limits using Redis sliding window.

    Returns: (allowed: bool, retry_after_seconds: int | None)
    """
    try:
        redis = await get_redis()

        redis_key = f"hookgate:ratelimit:{key}"
        now = time.time()
        window_start = now - window

        pipe = redis.pipeline()
        pipe.zremrangebyscore(redis_key, 0, window_start)
        # Unique member so concurrent requests at the same instant all count
        pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, window + 1)

        results = await pipe.execute()
        request_count = results[2]

        if request_count > limit:
            logger.warning(
                "Rate limit exceeded: key=%s count=%d limit=%d",
                key, request_count, limit,
            )
            return False, window

        return True, None
    except Exception as e:
        logger.warning("Rate limiter Redis error: %s. Allowing request.", str(e))
        return True, None


async def check_webhook_rate_limits(
    client_ip: str,
    connector_id: str,
    connector_limit: int,
    ip_limit: int = DEFAULT_IP_LIMIT,
) -> tuple[bool, Optional[int]]:
    """
    Check both source-IP and connector-level limits.
    Returns (allowed, retry_after_seconds).
    """
    ip_allowed, ip_retry = await check_rate_limit(f"ip:{client_ip}", ip_limit)
    if not ip_allowed:
        return False, ip_retry

    return await check_rate_limit(f"connector:{connector_id}", connector_limit)
