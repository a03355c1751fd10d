"""
Redis-based rate limiting enforcement.

Policy (limits, sensitive endpoints) lives in rate_limit_config.py.
"""
import logging
import time
import uuid

from core.rate_limit_config import OperationType, RateLimitResult
from core.redis import get_redis_client

logger = logging.getLogger(__name__)

MINUTE = 60
DAY = 86400


async def check_rate_limit(uid: str, operation_type: OperationType) -> RateLimitResult:
    """
    Check if request is allowed and return full rate limit info.

    Falls back to allowing requests if Redis is unavailable.
    """
    # Import at call time so tests can monkeypatch rate_limit_config.RATE_LIMITS
    from core.rate_limit_config import RATE_LIMITS  # noqa: PLC0415

    config = RATE_LIMITS.get(operation_type)
    if not config:
        return RateLimitResult.permissive()

    redis_client = get_redis_client()
    if redis_client is None or not redis_client.is_connected:
        logger.warning("redis_unavailable", extra={"operation": "rate_limit"})
        return RateLimitResult.permissive(config.requests_per_minute)

    now = int(time.time())

    minute_result = await _check_sliding_window(
        f"rate:{uid}:{operation_type.value}:min", config.requests_per_minute, MINUTE, now,
    )
    if not minute_result.allowed:
        _log_exceeded(uid, operation_type, "per_minute")
        return minute_result

    daily_pool = "sensitive" if operation_type == OperationType.SENSITIVE else "general"
    day_result = await _check_fixed_window(
        f"rate:{uid}:daily:{daily_pool}", config.requests_per_day, DAY, now,
    )
    if not day_result.allowed:
        _log_exceeded(uid, operation_type, "daily")
        return day_result

    # Per-minute info is the more useful one for response headers
    return minute_result


def _log_exceeded(uid: str, operation_type: OperationType, limit_type: str) -> None:
    logger.warning(
        "rate_limit_exceeded",
        extra={"uid": uid, "operation": operation_type.value, "limit_type": limit_type},
    )


async def _check_sliding_window(
    key: str, max_requests: int, window_seconds: int, now: int,
) -> RateLimitResult:
    """Sliding window check using a Redis sorted set."""
    redis_client = get_redis_client()
    result = None
    if redis_client is not None:
        result = await redis_client.eval_sliding_window(
            key=key,
            now=now,
            window_seconds=window_seconds,
            max_requests=max_requests,
            request_id=str(uuid.uuid4()),
        )
    if result is None:
        return RateLimitResult.permissive(max_requests)

    allowed, remaining, retry_after = result
    return RateLimitResult(
        allowed=bool(allowed),
        limit=max_requests,
        remaining=max(0, remaining),
        reset=now + window_seconds,
        retry_after=max(0, retry_after) if not allowed else 0,
    )


async def _check_fixed_window(
    key: str, max_requests: int, window_seconds: int, now: int,
) -> RateLimitResult:
    """Fixed window check; slight boundary imprecision is fine for daily caps."""
    redis_client = get_redis_client()
    result = None
    if redis_client is not None:
        result = await redis_client.eval_fixed_window(
            key=key,
            max_requests=max_requests,
            window_seconds=window_seconds,
        )
    if result is None:
        return RateLimitResult.permissive(max_requests)

    allowed, remaining, ttl, retry_after = result
    return RateLimitResult(
        allowed=bool(allowed),
        limit=max_requests,
        remaining=max(0, remaining),
        reset=now + ttl if ttl > 0 else now + window_seconds,
        retry_after=max(0, retry_after) if not allowed else 0,
    )
