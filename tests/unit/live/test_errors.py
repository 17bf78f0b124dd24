"""
Unit tests for market feed exceptions.
"""

from dhanfeed.live.errors import (
    ConfigurationError,
    ConnectionError,
    FeedError,
    RateLimitError,
    SingletonLockError,
)


class TestFeedErrors:
    """Tests for the exception hierarchy."""

    def test_str_includes_component_and_details(self) -> None:
        """Test string rendering with component and details."""
        err = FeedError("boom", component="feed", details={"a": 1})
        assert str(err) == "boom [component=feed] [details={'a': 1}]"

    def test_plain_message(self) -> None:
        """Test string rendering without extras."""
        assert str(FeedError("boom")) == "boom"

    def test_configuration_error_fields(self) -> None:
        """Test that field and value land in details."""
        err = ConfigurationError("bad", field="cool_off_s", value=-1)
        assert err.details == {"field": "cool_off_s", "value": "-1"}
        assert isinstance(err, FeedError)

    def test_connection_error_close_code(self) -> None:
        """Test that the close code is recorded."""
        err = ConnectionError("lost", url="wss://x", close_code=1006)
        assert err.details == {"url": "wss://x", "close_code": 1006}

    def test_rate_limit_error(self) -> None:
        """Test the cool-off is carried."""
        assert RateLimitError("429", cool_off_s=60.0).cool_off_s == 60.0

    def test_singleton_lock_error_pid(self) -> None:
        """Test the conflicting PID is exposed."""
        err = SingletonLockError("held", pid="1234")
        assert err.pid == "1234"
        assert "pid" in str(err)
