"""
Rate limiting service.

Fixed-window counters in Redis keyed by operation and principal.
"""

import logging
import time

from fastapi import Depends
from redis.exceptions import RedisError

from backend.app.core.config import settings
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import RateLimitExceededError
from backend.app.core.redis_client import get_redis

logger = logging.getLogger(__name__)


async def hit(redis, key: str, limit: int, window_seconds: int) -> bool:
    """
    Count one attempt against `key`.

    Returns:
        True if the attempt is within the limit for the current window
    """
    window_key = f"rl:{key}:{int(time.time() // window_seconds)}"
    current = await redis.incr(window_key)
    if current == 1:
        await redis.expire(window_key, window_seconds)
    return current <= limit


def rate_limit(operation: str):
    """
    Dependency factory limiting `operation` per authenticated user.

    Usage:
        @router.post("/payments/mobile-money")
        async def initiate(current_user: dict = Depends(rate_limit("mobile-money"))):
            ...

    Fails open (with a warning) when Redis is unavailable: payments keep
    working without the limiter.
    """
    async def limiter(
        current_user: dict = Depends(get_current_user),
        redis=Depends(get_redis),
    ) -> dict:
        key = f"{operation}:{current_user['user_id']}"
        try:
            allowed = await hit(redis, key, settings.payment_rate_limit, settings.payment_rate_window_seconds)
        except RedisError as exc:
            logger.warning("Rate limiter unavailable for %s: %s", key, exc)
            return current_user

        if not allowed:
            raise RateLimitExceededError()
        return current_user

    return limiter
