"""Unit tests for RetryPolicy."""

import pytest

from mqtt_google_home.retry_policy import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy"""

    def test_delay_doubles_and_caps(self):
        """Test exponential growth bounded by max_delay_seconds"""
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=5.0, jitter_factor=0)

        assert [policy.get_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_bounded(self):
        """Test jitter stays within the configured fraction"""
        policy = RetryPolicy(base_delay_seconds=1.0, jitter_factor=0.1)

        for _ in range(20):
            assert 1.0 <= policy.get_delay(0) <= 1.1

    @pytest.mark.parametrize(
        ("attempt", "status", "expected"),
        [
            (1, None, True),
            (1, 503, True),
            (1, 429, True),
            (1, 400, False),
            (1, 404, False),
            (3, 503, False),
        ],
    )
    def test_should_retry(self, attempt, status, expected):
        """Test which failures are retried"""
        assert RetryPolicy(max_attempts=3).should_retry(attempt, status) is expected

    def test_at_least_one_attempt(self):
        """Test that max_attempts is clamped to 1"""
        policy = RetryPolicy(max_attempts=0)

        assert policy.max_attempts == 1
        assert not policy.should_retry(1)
