"""
Retry logic for collaborator calls (calendar, email, text generation)
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .logger import setup_logger

logger = setup_logger(__name__)
_stdlib_logger = logging.getLogger(__name__)


# ============================================
# RETRY CONFIGURATIONS
# ============================================

class RetryConfig:
    """Retry configuration constants"""

    CALENDAR_MAX_ATTEMPTS = 3
    CALENDAR_MIN_WAIT = 0.5  # seconds
    CALENDAR_MAX_WAIT = 4
    CALENDAR_MULTIPLIER = 2

    DEFAULT_MAX_ATTEMPTS = 3
    DEFAULT_MIN_WAIT = 1
    DEFAULT_MAX_WAIT = 10
    DEFAULT_MULTIPLIER = 2


RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def _status_code(exception: BaseException):
    """Pull an HTTP status from the usual client exception shapes."""
    for attr in ("status_code", "status"):
        value = getattr(exception, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exception, "resp", None) or getattr(exception, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            value = getattr(response, attr, None)
            if isinstance(value, int):
                return value
    return None


def is_transient_error(exception: BaseException) -> bool:
    """
    Check if a collaborator error is worth retrying.

    Retryable: connection errors, timeouts, rate limits (429) and 5xx.
    Everything else (bad request, auth, not found) fails immediately.
    """
    if isinstance(exception, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    status = _status_code(exception)
    if status is None:
        return False
    if status in RETRYABLE_STATUS_CODES:
        logger.warning(f"[Retry] Retryable collaborator error {status}: {exception}")
        return True
    return False


async def call_with_retry(
    func: Callable[..., Awaitable[Any]],
    *args,
    max_attempts: int = RetryConfig.DEFAULT_MAX_ATTEMPTS,
    min_wait: float = RetryConfig.DEFAULT_MIN_WAIT,
    max_wait: float = RetryConfig.DEFAULT_MAX_WAIT,
    **kwargs
) -> Any:
    """
    Await ``func(*args, **kwargs)``, retrying transient failures.

    The last exception is re-raised once attempts are exhausted.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=RetryConfig.DEFAULT_MULTIPLIER,
            min=min_wait,
            max=max_wait
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=before_sleep_log(_stdlib_logger, logging.INFO),
        reraise=True
    ):
        with attempt:
            result = await func(*args, **kwargs)
    return result
