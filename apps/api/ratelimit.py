"""
Rate limiting using Redis fixed-window counters.

Supports rate limiting by:
- Authenticated user_id
- IP address (auth endpoints and unauthenticated requests)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

import redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from apps.api.config import get_settings
from apps.api.redis_client import get_redis

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class RateLimitTier(str, Enum):
    """Rate limit tiers for different endpoint types."""

    DEFAULT = "default"  # Standard limit
    AUTH = "auth"  # Login/register/refresh, always per IP


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # Unix timestamp
    retry_after: int | None = None  # Seconds until reset (if blocked)


@dataclass
class RateLimitInfo:
    """Information about rate limit context."""

    key: str  # Redis key
    identifier: str  # Human-readable identifier
    identifier_type: str  # "user", "ip"


def check_rate_limit(
    redis_client: redis.Redis,
    key: str,
    limit: int,
    window_seconds: int | None = None,
) -> RateLimitResult:
    """Check and increment rate limit counter for the current window.

    Args:
        redis_client: Redis client instance
        key: Rate limit key (e.g., "ratelimit:user:123")
        limit: Maximum requests allowed per window
        window_seconds: Window size in seconds (default from settings)

    Returns:
        RateLimitResult with allowed status and metadata
    """
    if window_seconds is None:
        window_seconds = get_settings().rate_limit_window_seconds

    now = int(time.time())
    window_start = now - (now % window_seconds)
    window_key = f"{key}:{window_start}"

    pipe = redis_client.pipeline()
    pipe.incr(window_key)
    pipe.expire(window_key, window_seconds + 1)  # TTL slightly longer than window
    results = pipe.execute()

    current_count = results[0]
    remaining = max(0, limit - current_count)
    reset_at = window_start + window_seconds

    if current_count > limit:
        return RateLimitResult(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after=reset_at - now,
        )

    return RateLimitResult(
        allowed=True,
        limit=limit,
        remaining=remaining,
        reset_at=reset_at,
    )


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, considering proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def _extract_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    tier: RateLimitTier,
) -> RateLimitInfo:
    """User id from a valid bearer token, else the client IP."""
    if credentials and tier != RateLimitTier.AUTH:
        from apps.api.auth.security import decode_access_token

        payload = decode_access_token(credentials.credentials)
        if payload and "sub" in payload:
            user_id = payload["sub"]
            return RateLimitInfo(
                key=f"ratelimit:user:{user_id}",
                identifier=user_id,
                identifier_type="user",
            )

    client_ip = get_client_ip(request)
    return RateLimitInfo(
        key=f"ratelimit:{tier.value}:ip:{client_ip}",
        identifier=client_ip,
        identifier_type="ip",
    )


class RateLimiter:
    """Configurable rate limiter dependency factory."""

    def __init__(self, tier: RateLimitTier = RateLimitTier.DEFAULT):
        self.tier = tier

    def _limit(self) -> int:
        settings = get_settings()
        if self.tier == RateLimitTier.AUTH:
            return settings.rate_limit_auth_rpm
        return settings.rate_limit_default_rpm

    async def __call__(
        self,
        request: Request,
        redis_client: redis.Redis = Depends(get_redis),
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    ) -> RateLimitResult:
        """Check rate limit and raise 429 if exceeded."""
        settings = get_settings()
        info = _extract_identity(request, credentials, self.tier)
        limit = self._limit()

        try:
            # redis-py is blocking
            result = await asyncio.to_thread(
                check_rate_limit,
                redis_client,
                info.key,
                limit,
                settings.rate_limit_window_seconds,
            )
        except redis.RedisError as e:
            # Fail open when Redis is unreachable
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit,
                reset_at=int(time.time()) + settings.rate_limit_window_seconds,
            )

        request.state.rate_limit_result = result

        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "rate_limit_exceeded",
                    "message": "Too many requests, please try again later",
                    "limit": result.limit,
                    "reset_at": result.reset_at,
                    "retry_after": result.retry_after,
                },
                headers={
                    "Retry-After": str(result.retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(result.reset_at),
                },
            )

        return result


# Pre-configured rate limiters
rate_limit_default = RateLimiter(tier=RateLimitTier.DEFAULT)
rate_limit_auth = RateLimiter(tier=RateLimitTier.AUTH)
