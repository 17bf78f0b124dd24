"""
Unit tests for ReconnectBackoff.
"""

import random

import pytest

from dhanfeed.live.backoff import ReconnectBackoff


class TestReconnectBackoff:
    """Tests for backoff growth."""

    def test_doubles_and_caps(self) -> None:
        """Test delays double then stay at the cap."""
        backoff = ReconnectBackoff(base_s=2.0, cap_s=10.0, jitter=0.0)
        assert [backoff.next_delay() for _ in range(5)] == [2.0, 4.0, 8.0, 10.0, 10.0]

    def test_reset(self) -> None:
        """Test reset restores the base delay."""
        backoff = ReconnectBackoff(base_s=2.0, cap_s=90.0, jitter=0.0)
        backoff.next_delay()
        backoff.next_delay()
        backoff.reset()
        assert backoff.current == 2.0
        assert backoff.next_delay() == 2.0

    def test_jitter_bounds(self) -> None:
        """Test jitter adds at most the configured fraction."""
        backoff = ReconnectBackoff(base_s=10.0, cap_s=10.0, jitter=0.2, rng=random.Random(1))
        for _ in range(100):
            delay = backoff.next_delay()
            assert 10.0 <= delay <= 12.0

    def test_delays_non_decreasing_without_jitter(self) -> None:
        """Test consecutive failures never shorten the wait."""
        backoff = ReconnectBackoff(base_s=2.0, cap_s=90.0, jitter=0.0)
        delays = [backoff.next_delay() for _ in range(10)]
        assert delays == sorted(delays)
        assert max(delays) == pytest.approx(90.0)
