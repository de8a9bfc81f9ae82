"""
Per-IP throttling for coupon validation, so codes cannot be brute-forced.

Fixed window counter in Redis. When Redis is unreachable the request goes
through (fail-open) and the error is logged.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional, Union

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis

from app.core.config import settings

logger = logging.getLogger(__name__)

COUPON_RATE_WINDOW = 60  # seconds

_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """Lazily create the shared async Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def client_ip(request: Request) -> str:
    """Client IP, taking the first X-Forwarded-For hop when present."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class FixedWindowLimiter:
    """
    FastAPI dependency allowing ``limit`` requests per IP every ``window`` seconds.

    ``limit`` may be a callable so the value is read from settings on each
    request.
    """

    def __init__(
        self,
        prefix: str,
        *,
        limit: Union[int, Callable[[], int]],
        window: int = COUPON_RATE_WINDOW,
    ) -> None:
        self.prefix = prefix
        self._limit = limit
        self.window = window

    @property
    def limit(self) -> int:
        return self._limit() if callable(self._limit) else self._limit

    async def hit(self, identity: str) -> Optional[int]:
        """
        Count one request for ``identity``.

        Returns:
            Seconds until the window resets when over the limit, else None.
        """
        key = f"{self.prefix}:{identity}"
        redis: Redis = get_redis_client()
        current = await redis.incr(key)
        if current == 1:
            await redis.expire(key, self.window)

        limit = self.limit
        if current <= limit:
            return None

        logger.warning("rate_limit_exceeded key=%s count=%d limit=%d", key, current, limit)
        ttl = await redis.ttl(key)
        return max(ttl, 1)

    async def __call__(self, request: Request) -> None:
        try:
            retry_after = await self.hit(client_ip(request))
        except Exception:
            logger.exception("rate_limit redis error prefix=%s, allowing request", self.prefix)
            return

        if retry_after is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Muitas tentativas. Tente novamente em breve.",
                headers={"Retry-After": str(retry_after)},
            )


coupon_validate_rate_limit = FixedWindowLimiter(
    "rl:coupon",
    limit=lambda: settings.COUPON_VALIDATE_RATE_LIMIT_PER_MINUTE,
)
