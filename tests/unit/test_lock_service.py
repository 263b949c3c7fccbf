"""
Unit tests for the sync lock

Tests single-flight acquisition, release and degradation when Redis is down
"""
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.services.lock_service import RELEASE_SCRIPT, SyncInProgressError, SyncLockService


@pytest.fixture
def mock_redis():
    redis = AsyncMock()
    redis.ping.return_value = True
    redis.set.return_value = True
    redis.eval.return_value = 1
    return redis


async def connected_lock(mock_redis) -> SyncLockService:
    with patch("redis.asyncio.from_url", AsyncMock(return_value=mock_redis)):
        lock = SyncLockService(url="redis://localhost:6379/1", ttl_seconds=120)
        await lock.connect()
    return lock


@pytest.mark.unit
class TestSyncLockService:
    """Test suite for SyncLockService"""

    @pytest.mark.asyncio
    async def test_hold_acquires_and_releases(self, mock_redis):
        """
        Test lock lifecycle

        Given: A connected lock
        When: hold() wraps a block
        Then: SET NX EX before, compare-and-delete after
        """
        lock = await connected_lock(mock_redis)

        async with lock.hold("user-1"):
            key, token = mock_redis.set.call_args.args
            assert mock_redis.set.call_args.kwargs == {"nx": True, "ex": 120}
            mock_redis.eval.assert_not_called()

        assert key == "mailsync:lock:user-1"
        mock_redis.eval.assert_awaited_once_with(RELEASE_SCRIPT, 1, key, token)

    @pytest.mark.asyncio
    async def test_held_lock_rejects_second_sync(self, mock_redis):
        """
        Test concurrent sync

        Given: The user's lock is already held
        When: hold() is entered
        Then: SyncInProgressError and nothing released
        """
        mock_redis.set.return_value = None
        lock = await connected_lock(mock_redis)

        with pytest.raises(SyncInProgressError):
            async with lock.hold("user-1"):
                pytest.fail("block must not run")

        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_released_when_block_raises(self, mock_redis):
        lock = await connected_lock(mock_redis)

        with pytest.raises(RuntimeError):
            async with lock.hold("user-1"):
                raise RuntimeError("fetch failed")

        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_down_disables_lock(self, mock_redis):
        """
        Test degradation

        Given: Redis refuses connections at startup
        When: hold() is used
        Then: The block runs unlocked
        """
        mock_redis.ping.side_effect = RedisConnectionError("connection refused")
        lock = await connected_lock(mock_redis)
        ran = []

        async with lock.hold("user-1"):
            ran.append(True)

        assert lock.is_enabled is False
        assert ran == [True]
        assert await lock.check_health() is False

    @pytest.mark.asyncio
    async def test_set_failure_continues_unlocked(self, mock_redis):
        mock_redis.set.side_effect = RedisConnectionError("connection reset")
        lock = await connected_lock(mock_redis)
        ran = []

        async with lock.hold("user-1"):
            ran.append(True)

        assert ran == [True]
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect(self, mock_redis):
        lock = await connected_lock(mock_redis)

        await lock.disconnect()

        mock_redis.aclose.assert_awaited_once()
        assert lock.is_enabled is False
