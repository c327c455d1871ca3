# utils/redis_conn.py
import logging
import redis.asyncio as redis
from redis.exceptions import RedisError
import os
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class RedisConnection:
    """
    Thin wrapper around an async Redis client used for per-user
    rate limiting and health checks.
    """

    def __init__(self, client=None):
        if client is not None:
            self.client = client
            return

        redis_uri = os.getenv("REDIS_URI")
        if redis_uri:
            self.client = redis.from_url(redis_uri, decode_responses=True)
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port_raw = os.getenv("REDIS_PORT", "6379")
            redis_db_raw = os.getenv("REDIS_DB", "0")

            try:
                redis_port = int(redis_port_raw)
            except ValueError:
                redis_port = 6379

            try:
                redis_db = int(redis_db_raw) if redis_db_raw.strip() != "" else 0
            except ValueError:
                redis_db = 0

            redis_password = os.getenv("REDIS_PASSWORD", None)

            self.client = redis.Redis(
                host=redis_host,
                port=redis_port,
                db=redis_db,
                password=redis_password if redis_password else None,
                socket_timeout=int(os.getenv("REDIS_SOCKET_TIMEOUT", 5)),
                decode_responses=True,
            )

    # Rate limiting
    async def check_rate_limit(self, user_id: str, limit=None, window=None) -> bool:
        """
        Fixed-window counter per user. Returns False once the user has
        exceeded `limit` requests in the current `window` seconds.
        Fails open when Redis is unreachable.
        """
        if limit is None:
            limit = int(os.getenv("RATE_LIMIT_REQUESTS", 20))
        if window is None:
            window = int(os.getenv("RATE_LIMIT_WINDOW", 60))

        key = f"ratelimit:{user_id}"
        try:
            current = await self.client.incr(key)
            if current == 1:
                await self.client.expire(key, window)
        except RedisError as e:
            logger.warning(f"[Redis] Rate limit check skipped: {e}")
            return True
        return current <= limit

    async def check_connection(self) -> bool:
        """Ping Redis, logging instead of raising on failure."""
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"[Redis] Connection error: {e}")
            return False

    async def close(self):
        await self.client.aclose()


@lru_cache(maxsize=1)
def get_redis_connection() -> RedisConnection:
    """
    FastAPI dependency factory that returns a singleton RedisConnection instance.
    """
    return RedisConnection()
