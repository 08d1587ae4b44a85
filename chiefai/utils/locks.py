"""
Distributed lock service with Redis support

Used to serialise work on a key across process instances. The in-memory
backend covers single-process deployments and tests.
"""
import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from .logger import setup_logger

logger = setup_logger(__name__)

# Delete the key only while it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockService(ABC):
    """Abstract base class for lock backends."""

    @abstractmethod
    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        """
        Try to take the lock for ``key``.

        Args:
            key: Lock name
            ttl_seconds: Expiry after which the lock frees itself

        Returns:
            True if this caller now holds the lock
        """
        pass

    @abstractmethod
    async def release(self, key: str) -> None:
        """Release a lock held by this service instance. Unknown keys are ignored."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryLockService(LockService):
    """In-process lock storage (single server only)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._locks: Dict[str, Tuple[str, float]] = {}
        self._held: Dict[str, str] = {}
        self._mutex = asyncio.Lock()

    def _purge_expired(self, key: str) -> None:
        entry = self._locks.get(key)
        if entry and entry[1] <= self._clock():
            del self._locks[key]

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        async with self._mutex:
            self._purge_expired(key)
            if key in self._locks:
                return False
            token = uuid.uuid4().hex
            self._locks[key] = (token, self._clock() + ttl_seconds)
            self._held[key] = token
            return True

    async def release(self, key: str) -> None:
        async with self._mutex:
            token = self._held.pop(key, None)
            entry = self._locks.get(key)
            if token and entry and entry[0] == token:
                del self._locks[key]

    async def is_locked(self, key: str) -> bool:
        async with self._mutex:
            self._purge_expired(key)
            return key in self._locks


class RedisLockService(LockService):
    """Redis-backed lock storage (distributed), SET NX EX with owner tokens."""

    def __init__(self, redis_url: str, fail_open: bool = True, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.fail_open = fail_open
        self._client = client
        self._tokens: Dict[str, str] = {}

    async def _get_client(self) -> Optional[redis.Redis]:
        """Lazy-load Redis client."""
        if self._client is None:
            try:
                client = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
                await client.ping()
                self._client = client
                logger.info("[OK] Redis lock service connected")
            except Exception as e:
                logger.warning(f"[Locks] Redis connection failed: {e}")
                return None
        return self._client

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        client = await self._get_client()
        if client is None:
            # Same rule as a Redis error: uniqueness constraints remain the backstop
            logger.warning(f"[Locks] Redis unavailable, fail_open={self.fail_open} for {key}")
            return self.fail_open

        token = uuid.uuid4().hex
        try:
            acquired = await client.set(key, token, nx=True, ex=ttl_seconds)
        except Exception as e:
            logger.error(f"[Locks] Redis acquire error for {key}: {e}")
            return self.fail_open

        if acquired:
            self._tokens[key] = token
            return True
        return False

    async def release(self, key: str) -> None:
        token = self._tokens.pop(key, None)
        if token is None:
            return
        client = await self._get_client()
        if client is None:
            return
        try:
            await client.eval(_RELEASE_SCRIPT, 1, key, token)
        except Exception as e:
            # TTL expiry frees the key eventually
            logger.warning(f"[Locks] Redis release error for {key}: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_lock_service(redis_url: Optional[str], fail_open: bool = True) -> LockService:
    """Pick the Redis backend when a URL is configured, otherwise in-process."""
    if redis_url:
        return RedisLockService(redis_url, fail_open=fail_open)
    logger.info("[Locks] No Redis URL configured, using in-process locks")
    return InMemoryLockService()
