"""Redis client with connection pooling and graceful fallback."""
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import NoScriptError, RedisError

logger = logging.getLogger(__name__)

# Sliding window (per-minute limits): sorted set of request timestamps
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local request_id = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)

if count < limit then
    redis.call('ZADD', key, now, now .. ':' .. request_id)
    redis.call('EXPIRE', key, window)
    return {1, limit - count - 1, 0}
end

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local retry_after = 0
if oldest and oldest[2] then
    retry_after = math.ceil((oldest[2] + window) - now)
end
return {0, 0, retry_after}
"""

# Fixed window (daily limits): counter whose expiry is set on the first hit
FIXED_WINDOW_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

local count = redis.call('INCR', key)
if count == 1 then
    redis.call('EXPIRE', key, window)
end
local ttl = redis.call('TTL', key)

if count <= limit then
    return {1, limit - count, ttl, 0}
end
return {0, 0, ttl, ttl}
"""

SCRIPTS: dict[str, str] = {
    "sliding_window": SLIDING_WINDOW_SCRIPT,
    "fixed_window": FIXED_WINDOW_SCRIPT,
}


class RedisClient:
    """
    Async Redis client with connection pooling and graceful fallback.

    Every operation returns None/False instead of raising when Redis is
    unreachable so callers can fail open.
    """

    def __init__(self, url: str, enabled: bool = True, pool_size: int = 20) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._script_shas: dict[str, str] = {}

    async def connect(self) -> None:
        """Initialize connection pool and load Lua scripts."""
        if not self._enabled:
            logger.info("Redis disabled by configuration")
            return
        try:
            self._pool = ConnectionPool.from_url(self._url, max_connections=self._pool_size)
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            await self._load_scripts()
            logger.info("Redis connected successfully")
        except RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            self._client = None
            self._pool = None

    async def _load_scripts(self) -> None:
        """Load Lua scripts and store their SHAs for evalsha calls."""
        if not self._client:
            return
        try:
            for name, script in SCRIPTS.items():
                self._script_shas[name] = await self._client.script_load(script)
        except RedisError as e:
            logger.warning("Failed to load Lua scripts: %s", e)
            self._script_shas.clear()

    async def close(self) -> None:
        """Close connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._pool = None
            self._script_shas.clear()
            logger.info("Redis connection closed")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        if not self._client:
            return False
        try:
            return await self._client.ping()
        except RedisError:
            return False

    async def _run_script(self, name: str, key: str, *args: Any) -> list[int] | None:
        """
        Execute a loaded Lua script, reloading scripts once on NOSCRIPT.

        Returns None (fail open) if Redis or the script is unavailable.
        """
        if not self._client or name not in self._script_shas:
            return None
        try:
            return await self._client.evalsha(self._script_shas[name], 1, key, *args)
        except NoScriptError:
            # Redis restarted and lost its script cache
            logger.warning("redis_script_reload", extra={"script": name})
            await self._load_scripts()
            if name not in self._script_shas:
                return None
            try:
                return await self._client.evalsha(self._script_shas[name], 1, key, *args)
            except RedisError as e:
                logger.warning("Redis %s retry failed: %s", name, e)
                return None
        except RedisError as e:
            logger.warning("Redis %s failed: %s", name, e)
            return None

    async def eval_sliding_window(
        self,
        key: str,
        now: int,
        window_seconds: int,
        max_requests: int,
        request_id: str,
    ) -> list[int] | None:
        """Returns [allowed, remaining, retry_after] or None if Redis unavailable."""
        return await self._run_script(
            "sliding_window", key, now, window_seconds, max_requests, request_id,
        )

    async def eval_fixed_window(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
    ) -> list[int] | None:
        """Returns [allowed, remaining, ttl, retry_after] or None if Redis unavailable."""
        return await self._run_script("fixed_window", key, max_requests, window_seconds)


class _RedisState:
    """Container for global Redis client state."""

    client: RedisClient | None = None


_state = _RedisState()


def get_redis_client() -> RedisClient | None:
    """Get the global Redis client instance."""
    return _state.client


def set_redis_client(client: RedisClient | None) -> None:
    """Set the global Redis client instance."""
    _state.client = client
