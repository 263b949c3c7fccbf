"""Redis single-flight lock guarding one sync job per user."""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.config.settings import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Delete the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class SyncInProgressError(Exception):
    """A sync for this user is already running."""

    pass


class SyncLockService:
    """Per-user lock with a TTL; degrades to no locking when Redis is down."""

    def __init__(self, url: Optional[str] = None, ttl_seconds: Optional[int] = None) -> None:
        self.url = url or settings.redis.url
        self.prefix = settings.redis.lock_prefix
        self.ttl_seconds = ttl_seconds or settings.sync.lock_ttl_seconds
        self.redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis; on failure the lock stays disabled."""
        try:
            self.redis = await aioredis.from_url(self.url, decode_responses=True)
            await self.redis.ping()
            logger.info("Connected to Redis", redis_url=self.url)
        except (RedisError, OSError) as e:
            logger.warning("Redis unavailable, sync lock disabled", error=str(e))
            self.redis = None

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Disconnected from Redis")

    @property
    def is_enabled(self) -> bool:
        return self.redis is not None

    def _key(self, user_id: str) -> str:
        return f"{self.prefix}:{user_id}"

    async def check_health(self) -> bool:
        if not self.redis:
            return False
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError):
            return False

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        """
        Hold the sync lock of a user for the duration of the block.

        Raises:
            SyncInProgressError: If another sync holds the lock
        """
        if not self.redis:
            yield
            return

        key = self._key(user_id)
        token = uuid.uuid4().hex
        try:
            acquired = await self.redis.set(key, token, nx=True, ex=self.ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning("Sync lock unavailable, continuing unlocked", user_id=user_id, error=str(e))
            yield
            return

        if not acquired:
            logger.warning("Sync already running", user_id=user_id)
            raise SyncInProgressError("A sync for this mailbox is already running")

        try:
            yield
        finally:
            try:
                await self.redis.eval(RELEASE_SCRIPT, 1, key, token)
            except (RedisError, OSError) as e:
                logger.warning("Failed to release sync lock", user_id=user_id, error=str(e))
