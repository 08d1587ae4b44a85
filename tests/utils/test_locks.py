"""
Tests for lock backends
"""
import pytest
from unittest.mock import AsyncMock

from chiefai.utils.locks import InMemoryLockService, RedisLockService, create_lock_service


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryLockService:
    """In-process locks"""

    @pytest.mark.asyncio
    async def test_second_acquire_is_denied(self):
        locks = InMemoryLockService()

        assert await locks.acquire("k", 60) is True
        assert await locks.acquire("k", 60) is False
        assert await locks.is_locked("k") is True

    @pytest.mark.asyncio
    async def test_release_frees_key(self):
        locks = InMemoryLockService()
        await locks.acquire("k", 60)

        await locks.release("k")

        assert await locks.acquire("k", 60) is True

    @pytest.mark.asyncio
    async def test_expired_lock_can_be_taken(self):
        """A crashed holder blocks the key only until its TTL runs out"""
        clock = FakeClock()
        locks = InMemoryLockService(clock=clock)
        await locks.acquire("k", 30)

        clock.now += 31

        assert await locks.acquire("k", 30) is True

    @pytest.mark.asyncio
    async def test_release_unknown_key_is_noop(self):
        locks = InMemoryLockService()
        await locks.release("missing")
        assert await locks.is_locked("missing") is False


class TestRedisLockService:
    """Redis locks with an injected client"""

    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_ex(self):
        client = AsyncMock()
        client.set.return_value = True
        locks = RedisLockService("redis://localhost:6379/0", client=client)

        assert await locks.acquire("k", 300) is True

        args, kwargs = client.set.call_args
        assert args[0] == "k"
        assert kwargs == {"nx": True, "ex": 300}

    @pytest.mark.asyncio
    async def test_acquire_denied_when_key_exists(self):
        client = AsyncMock()
        client.set.return_value = None
        locks = RedisLockService("redis://localhost:6379/0", client=client)

        assert await locks.acquire("k", 300) is False

    @pytest.mark.asyncio
    async def test_release_compares_token(self):
        """Release only deletes the key while it still holds our token"""
        client = AsyncMock()
        client.set.return_value = True
        locks = RedisLockService("redis://localhost:6379/0", client=client)
        await locks.acquire("k", 300)
        token = client.set.call_args[0][1]

        await locks.release("k")

        script, numkeys, key, passed_token = client.eval.call_args[0]
        assert numkeys == 1
        assert key == "k"
        assert passed_token == token

    @pytest.mark.asyncio
    async def test_redis_error_fails_open(self):
        client = AsyncMock()
        client.set.side_effect = ConnectionError("redis down")

        assert await RedisLockService("redis://x", client=client).acquire("k", 300) is True
        assert await RedisLockService("redis://x", fail_open=False, client=client).acquire("k", 300) is False

    @pytest.mark.asyncio
    async def test_close(self):
        client = AsyncMock()
        locks = RedisLockService("redis://x", client=client)

        await locks.close()

        client.aclose.assert_awaited_once()


def test_create_lock_service():
    assert isinstance(create_lock_service(None), InMemoryLockService)
    assert isinstance(create_lock_service("redis://localhost:6379/0"), RedisLockService)
