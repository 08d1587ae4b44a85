"""
Tests for Retry Logic Utilities
"""
import pytest
from unittest.mock import AsyncMock, Mock

from chiefai.utils.retry import call_with_retry, is_transient_error


# ============================================
# HELPER FUNCTIONS
# ============================================

class StatusError(Exception):
    """Client error carrying an HTTP status like most SDK exceptions"""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def response_error(status: int) -> Exception:
    error = Exception("wrapped")
    error.resp = Mock(status=status, status_code=None)
    return error


# ============================================
# TEST RETRY CONDITION FUNCTIONS
# ============================================

class TestRetryConditions:
    """Test retry condition functions"""

    def test_transient_network_errors(self):
        assert is_transient_error(ConnectionError("reset")) is True
        assert is_transient_error(TimeoutError()) is True

    def test_rate_limit_and_server_errors(self):
        for status in (429, 500, 502, 503, 504):
            assert is_transient_error(StatusError(status)) is True

    def test_client_errors_not_retryable(self):
        for status in (400, 401, 403, 404):
            assert is_transient_error(StatusError(status)) is False

    def test_status_on_response_object(self):
        assert is_transient_error(response_error(503)) is True
        assert is_transient_error(response_error(404)) is False

    def test_plain_exception_not_retryable(self):
        assert is_transient_error(ValueError("bad")) is False


# ============================================
# TEST call_with_retry
# ============================================

class TestCallWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        func = AsyncMock(return_value=["event"])

        result = await call_with_retry(func, "user-1", max_attempts=3, min_wait=0, max_wait=0)

        assert result == ["event"]
        func.assert_awaited_once_with("user-1")

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        func = AsyncMock(side_effect=[StatusError(503), StatusError(429), "ok"])

        result = await call_with_retry(func, max_attempts=3, min_wait=0, max_wait=0)

        assert result == "ok"
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = AsyncMock(side_effect=StatusError(404))

        with pytest.raises(StatusError):
            await call_with_retry(func, max_attempts=3, min_wait=0, max_wait=0)

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        func = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await call_with_retry(func, max_attempts=2, min_wait=0, max_wait=0)

        assert func.await_count == 2
