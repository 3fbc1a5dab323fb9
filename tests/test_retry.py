"""Tests for the retrying request executor."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deliverymetrics.errors import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RetryExhaustedError,
    TransientApiError,
    UnauthorizedError,
)
from deliverymetrics.retry import RetryableRequestExecutor


def _executor(max_retries: int = 3, base_delay: float = 1.0):
    sleep = Mock()
    return RetryableRequestExecutor(max_retries=max_retries, base_delay_seconds=base_delay, sleep=sleep), sleep


def test_execute_returns_result_without_sleeping_on_success():
    """Verify a successful first attempt returns immediately."""
    executor, sleep = _executor()
    request = Mock(return_value="ok")

    assert executor.execute(request, "GET thing") == "ok"
    request.assert_called_once_with()
    sleep.assert_not_called()


def test_execute_retries_transient_errors_with_linear_backoff():
    """Verify transient failures wait base_delay * attempt before retrying."""
    executor, sleep = _executor(base_delay=0.5)
    request = Mock(side_effect=[TransientApiError("502"), TransientApiError("503"), "ok"])

    assert executor.execute(request) == "ok"
    assert request.call_count == 3
    assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]


def test_execute_waits_ten_times_base_delay_when_rate_limited():
    """Verify rate-limit failures use the longer fixed delay."""
    executor, sleep = _executor(base_delay=2.0)
    request = Mock(side_effect=[RateLimitedError("slow down"), "ok"])

    assert executor.execute(request) == "ok"
    sleep.assert_called_once_with(20.0)


@pytest.mark.parametrize("error_type", [UnauthorizedError, ForbiddenError, NotFoundError])
def test_execute_does_not_retry_terminal_errors(error_type):
    """Verify 401/403/404 style failures propagate after a single attempt."""
    executor, sleep = _executor()
    request = Mock(side_effect=error_type("nope"))

    with pytest.raises(error_type):
        executor.execute(request)

    request.assert_called_once_with()
    sleep.assert_not_called()


def test_execute_retries_request_exceptions():
    """Verify network exceptions raised by requests are retried."""
    executor, sleep = _executor()
    request = Mock(side_effect=[requests.ConnectionError("reset"), "ok"])

    assert executor.execute(request) == "ok"
    sleep.assert_called_once_with(1.0)


def test_execute_raises_retry_exhausted_after_all_attempts():
    """Verify max_retries + 1 failed attempts raise RetryExhaustedError with the last error."""
    executor, sleep = _executor(max_retries=2)
    last = TransientApiError("third")
    request = Mock(side_effect=[TransientApiError("first"), TransientApiError("second"), last])

    with pytest.raises(RetryExhaustedError) as exc_info:
        executor.execute(request, "GET repos/o/r/pulls/1")

    assert request.call_count == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.last_error is last
    assert exc_info.value.description == "GET repos/o/r/pulls/1"
    # No sleep after the final attempt.
    assert sleep.call_count == 2


def test_execute_with_zero_retries_makes_one_attempt():
    """Verify max_retries=0 performs a single attempt."""
    executor, sleep = _executor(max_retries=0)
    request = Mock(side_effect=TransientApiError("boom"))

    with pytest.raises(RetryExhaustedError):
        executor.execute(request)

    request.assert_called_once_with()
    sleep.assert_not_called()


def test_negative_max_retries_is_rejected():
    """Verify negative retry counts are invalid."""
    with pytest.raises(ValueError):
        RetryableRequestExecutor(max_retries=-1)
