"""Tests for the retry policy."""

from unittest.mock import Mock

import pytest

from fantastic_probe.error_handling import MediaError, ToolError
from fantastic_probe.probe.retry import (
    LOCAL_DELAYS,
    REMOTE_DELAYS,
    BackoffPolicy,
    Deadline,
    RetryExhaustedError,
    retry_call,
)


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class TestBackoffPolicy:
    """Test schedule selection."""

    def test_local_and_remote_schedules(self):
        """Test remote paths get longer delays."""
        assert BackoffPolicy.for_path(False).delays == LOCAL_DELAYS == (30, 20, 10)
        assert BackoffPolicy.for_path(True).delays == REMOTE_DELAYS == (60, 30, 15)
        assert BackoffPolicy.for_path(True).attempts == 3

    def test_delay_before(self):
        """Test the delay before attempt n is delays[n - 2]."""
        policy = BackoffPolicy.for_path(True)

        assert policy.delay_before(1) == 0
        assert policy.delay_before(2) == 60
        assert policy.delay_before(3) == 30


class TestRetryCall:
    """Test retry_call."""

    def test_first_attempt_success(self):
        """Test no sleeping when the first attempt works."""
        sleep = Mock()

        result, attempt = retry_call(lambda n: "ok", BackoffPolicy(), sleep=sleep)

        assert (result, attempt) == ("ok", 1)
        sleep.assert_not_called()

    def test_retries_with_schedule(self):
        """Test sleeps follow the schedule until success."""
        sleep = Mock()
        func = Mock(side_effect=[ToolError("a"), ToolError("b"), "ok"])

        result, attempt = retry_call(func, BackoffPolicy(), sleep=sleep)

        assert (result, attempt) == ("ok", 3)
        assert [c[0][0] for c in sleep.call_args_list] == [30, 20]
        assert [c[0][0] for c in func.call_args_list] == [1, 2, 3]

    def test_exhausted(self):
        """Test the last error is kept when every attempt fails."""
        last = ToolError("third")
        func = Mock(side_effect=[ToolError("first"), ToolError("second"), last])

        with pytest.raises(RetryExhaustedError) as exc_info:
            retry_call(func, BackoffPolicy(), sleep=Mock())

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last

    def test_unlisted_errors_propagate(self):
        """Test exceptions outside retry_on are not retried."""
        func = Mock(side_effect=MediaError("bad"))

        with pytest.raises(MediaError):
            retry_call(func, BackoffPolicy(), sleep=Mock(), retry_on=(ToolError,))

        assert func.call_count == 1

    def test_deadline_stops_retries(self):
        """Test no retry starts when the wait would overrun the budget."""
        clock = FakeClock()
        deadline = Deadline(40, clock=clock)
        func = Mock(side_effect=ToolError("slow"))

        with pytest.raises(RetryExhaustedError) as exc_info:
            retry_call(func, BackoffPolicy(), sleep=clock.sleep, deadline=deadline)

        # 30s wait fits in 40s, the following 20s wait does not
        assert func.call_count == 2
        assert exc_info.value.attempts == 2

    def test_expired_deadline_skips_first_attempt(self):
        """Test nothing runs once the budget is spent."""
        clock = FakeClock()
        deadline = Deadline(10, clock=clock)
        clock.now = 11
        func = Mock()

        with pytest.raises(RetryExhaustedError):
            retry_call(func, BackoffPolicy(), sleep=clock.sleep, deadline=deadline)

        func.assert_not_called()
