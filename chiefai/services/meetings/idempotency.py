"""
IdempotencyGuard - one worker per (message, user) at a time
"""
from enum import Enum

from ...utils.config import ConfigDefaults
from ...utils.locks import LockService
from ...utils.logger import setup_logger

logger = setup_logger(__name__)


class Admission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class IdempotencyGuard:
    """
    Admission control over a shared lock service.

    A grant lasts until ``release`` or until the TTL expires, so a crashed
    worker blocks a key for at most ``ttl_seconds``.
    """

    def __init__(
        self,
        locks: LockService,
        ttl_seconds: int = ConfigDefaults.REDIS_LOCK_TTL_SECONDS,
        prefix: str = ConfigDefaults.REDIS_LOCK_PREFIX
    ):
        self.locks = locks
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def key_for(self, message_id: str, user_id: str) -> str:
        return f"{self.prefix}:{user_id}:{message_id}"

    async def admit(self, key: str) -> Admission:
        if await self.locks.acquire(key, self.ttl_seconds):
            return Admission.GRANTED
        logger.info(f"[IdempotencyGuard] {key} is already being processed")
        return Admission.DENIED

    async def release(self, key: str) -> None:
        try:
            await self.locks.release(key)
        except Exception as e:
            logger.warning(f"[IdempotencyGuard] Release failed for {key}, TTL will expire it: {e}")
