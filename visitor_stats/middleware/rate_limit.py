from fastapi import Request, status
from fastapi.responses import JSONResponse
import secrets
import time
import redis
import redis.asyncio as aioredis
import structlog
from visitor_stats.core.config import settings
from visitor_stats.core.i18n import get_t

logger = structlog.get_logger()

EXEMPT_PATHS = {"/health"}


class RateLimiter:
    """
    Per-client request limit.

    Uses a Redis sorted-set sliding window when REDIS_URL points at a
    reachable server, so several app instances share one budget. Otherwise
    each process keeps its own token buckets in memory.
    """

    def __init__(self, rate: int, period: int, redis_url: str | None = None):
        self.rate = rate
        self.period = period
        self.redis_url = redis_url or None
        self.redis_client = None
        self.use_redis = False
        self.buckets: dict[str, dict[str, float]] = {}
        self._connect_attempted = self.redis_url is None
        self._last_prune = time.monotonic()

    async def _connect(self) -> None:
        # Only the first request tries, the rest use memory until it succeeds
        self._connect_attempted = True
        try:
            client = aioredis.from_url(self.redis_url, decode_responses=False)
            await client.ping()
        except (redis.RedisError, ValueError) as e:
            logger.warning("rate_limiter_redis_failed_using_memory", error=str(e))
            return

        self.redis_client = client
        self.use_redis = True
        logger.info("rate_limiter_using_redis")

    async def is_allowed(self, key: str) -> bool:
        """True if the request identified by key is within the limit"""
        if not self._connect_attempted:
            await self._connect()

        if self.use_redis:
            try:
                return await self._is_allowed_redis(key)
            except redis.RedisError as e:
                logger.warning("rate_limiter_redis_error_using_memory", error=str(e))

        return self._is_allowed_memory(key)

    def _redis_key(self, key: str) -> str:
        return f"visitor_stats:rate_limit:{key}"

    async def _is_allowed_redis(self, key: str) -> bool:
        redis_key = self._redis_key(key)
        now = time.time()

        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, 0, now - self.period)
            pipe.zcard(redis_key)
            # The suffix keeps same-timestamp requests distinct
            pipe.zadd(redis_key, {f"{now}:{secrets.token_hex(4)}": now})
            pipe.expire(redis_key, self.period)
            results = await pipe.execute()

        # Count before this request was added
        return results[1] < self.rate

    def _is_allowed_memory(self, key: str) -> bool:
        now = time.monotonic()
        self._prune_buckets(now)

        bucket = self.buckets.setdefault(key, {"tokens": self.rate, "last_update": now})

        refill = (now - bucket["last_update"]) / self.period * self.rate
        bucket["tokens"] = min(self.rate, bucket["tokens"] + refill)
        bucket["last_update"] = now

        if bucket["tokens"] >= 1:
            bucket["tokens"] -= 1
            return True

        return False

    def _prune_buckets(self, now: float) -> None:
        """Drop buckets idle for a whole period, they would be full again anyway"""
        if now - self._last_prune < self.period:
            return

        self._last_prune = now
        idle = [k for k, b in self.buckets.items() if now - b["last_update"] >= self.period]
        for key in idle:
            del self.buckets[key]

        if idle:
            logger.debug("rate_limiter_buckets_pruned", count=len(idle), remaining=len(self.buckets))

    async def get_remaining(self, key: str) -> int:
        """Requests left for key in the current window"""
        if self.use_redis:
            now = time.time()
            try:
                count = await self.redis_client.zcount(self._redis_key(key), now - self.period, now)
                return max(0, self.rate - count)
            except redis.RedisError as e:
                logger.warning("rate_limiter_redis_error_using_memory", error=str(e))

        bucket = self.buckets.get(key)
        if not bucket:
            return self.rate
        return int(bucket["tokens"])

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
            self.use_redis = False


# Global rate limiter instance
rate_limiter = RateLimiter(
    rate=settings.rate_limit_requests,
    period=settings.rate_limit_period,
    redis_url=settings.redis_url
)


def rate_limit_key_for(request: Request) -> str:
    """Admin key holders get their own bucket, everyone else is limited per IP"""
    api_key = request.headers.get("X-API-Key")
    if api_key and settings.admin_api_key and secrets.compare_digest(
            api_key.encode(), settings.admin_api_key.encode()
    ):
        return "admin"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


async def rate_limit_middleware(request: Request, call_next):
    """
    Rate limiting middleware

    Limits requests per IP address (or the admin key)
    """
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    rate_limit_key = rate_limit_key_for(request)

    if not await rate_limiter.is_allowed(rate_limit_key):
        remaining = await rate_limiter.get_remaining(rate_limit_key)

        logger.warning(
            "rate_limit_exceeded",
            key=rate_limit_key,
            path=request.url.path,
            remaining=remaining
        )

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "success": False,
                "message": get_t(request)("rate_limit_exceeded"),
                "retry_after": rate_limiter.period
            },
            headers={
                "X-RateLimit-Limit": str(rate_limiter.rate),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": str(rate_limiter.period),
                "Retry-After": str(rate_limiter.period)
            }
        )

    response = await call_next(request)

    remaining = await rate_limiter.get_remaining(rate_limit_key)
    response.headers["X-RateLimit-Limit"] = str(rate_limiter.rate)
    response.headers["X-RateLimit-Remaining"] = str(remaining)
    response.headers["X-RateLimit-Reset"] = str(rate_limiter.period)

    return response
