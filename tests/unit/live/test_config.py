"""
Unit tests for market feed configuration.
"""

import pytest

from dhanfeed.adapters.env_provider import EnvCredentialsProvider
from dhanfeed.live.config import (
    DISCONNECT_REQUEST_CODE,
    ConnectionConfig,
    FeedMode,
    FeedSettings,
    build_feed_url,
    sanitize_url,
)
from dhanfeed.live.errors import ConfigurationError


class TestFeedMode:
    """Tests for FeedMode request codes."""

    @pytest.mark.parametrize(
        "mode,sub,unsub",
        [
            (FeedMode.TICKER, 15, 16),
            (FeedMode.QUOTE, 17, 18),
            (FeedMode.FULL, 21, 22),
        ],
    )
    def test_request_codes(self, mode: FeedMode, sub: int, unsub: int) -> None:
        """Test subscribe and unsubscribe codes per mode."""
        assert mode.subscribe_code == sub
        assert mode.unsubscribe_code == unsub

    def test_disconnect_code(self) -> None:
        """Test the disconnect request code."""
        assert DISCONNECT_REQUEST_CODE == 12

    def test_parse_accepts_names(self) -> None:
        """Test parsing modes from loosely-cased strings."""
        assert FeedMode.parse("Quote") == FeedMode.QUOTE
        assert FeedMode.parse(FeedMode.FULL) == FeedMode.FULL

    def test_parse_rejects_unknown(self) -> None:
        """Test that an unknown mode raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            FeedMode.parse("depth")
        assert exc_info.value.field == "mode"


class TestConnectionConfig:
    """Tests for ConnectionConfig."""

    def test_defaults(self) -> None:
        """Test default tuning values."""
        config = ConnectionConfig()
        assert config.base_backoff_s == 2.0
        assert config.max_backoff_s == 90.0
        assert config.backoff_jitter == 0.2
        assert config.cool_off_s == 60.0
        assert config.flush_interval_s == 0.25
        assert config.max_instruments_per_message == 100

    def test_invalid_base_backoff(self) -> None:
        """Test that non-positive base backoff raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ConnectionConfig(base_backoff_s=0)
        assert "base_backoff_s must be positive" in str(exc_info.value)

    def test_cap_below_base(self) -> None:
        """Test that a cap smaller than the base raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ConnectionConfig(base_backoff_s=5.0, max_backoff_s=1.0)
        assert exc_info.value.field == "max_backoff_s"

    def test_invalid_jitter(self) -> None:
        """Test that jitter outside [0, 1] raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            ConnectionConfig(backoff_jitter=1.5)
        assert "backoff_jitter must be between 0 and 1" in str(exc_info.value)

    def test_invalid_chunk_size(self) -> None:
        """Test that a zero chunk size raises error."""
        with pytest.raises(ConfigurationError):
            ConnectionConfig(max_instruments_per_message=0)

    def test_heartbeat_may_be_disabled(self) -> None:
        """Test that heartbeat can be turned off."""
        assert ConnectionConfig(heartbeat_s=None).heartbeat_s is None


class TestFeedSettings:
    """Tests for FeedSettings."""

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test reading credentials from DHAN_* variables."""
        monkeypatch.setenv("DHAN_ACCESS_TOKEN", "tok")
        monkeypatch.setenv("DHAN_CLIENT_ID", "1000001")
        monkeypatch.delenv("DHAN_WS_VERSION", raising=False)

        settings = FeedSettings.from_env()

        assert settings.access_token == "tok"
        assert settings.client_id == "1000001"
        assert settings.ws_version == 2

    def test_from_env_version_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that DHAN_WS_VERSION overrides the default version."""
        monkeypatch.setenv("DHAN_ACCESS_TOKEN", "tok")
        monkeypatch.setenv("DHAN_CLIENT_ID", "1000001")
        monkeypatch.setenv("DHAN_WS_VERSION", "1")

        assert FeedSettings.from_env().ws_version == 1

    def test_missing_token_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing token is a configuration error."""
        monkeypatch.delenv("DHAN_ACCESS_TOKEN", raising=False)
        monkeypatch.setenv("DHAN_CLIENT_ID", "1000001")

        with pytest.raises(ConfigurationError) as exc_info:
            FeedSettings.from_env()
        assert exc_info.value.field == "access_token"

    def test_from_provider(self) -> None:
        """Test building settings from an explicit provider."""
        provider = EnvCredentialsProvider(
            environ={"DHAN_ACCESS_TOKEN": "abc", "DHAN_CLIENT_ID": "42"}
        )
        settings = FeedSettings.from_provider(provider)
        assert (settings.access_token, settings.client_id) == ("abc", "42")

    def test_invalid_version(self) -> None:
        """Test that a bad version is reported as ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            FeedSettings.validated(access_token="t", client_id="c", ws_version="abc")
        assert exc_info.value.field == "ws_version"

    def test_extra_fields_rejected(self) -> None:
        """Test that unknown settings are rejected."""
        with pytest.raises(ConfigurationError):
            FeedSettings.validated(access_token="t", client_id="c", mode="ticker")


class TestFeedUrl:
    """Tests for URL building and sanitizing."""

    def test_build_feed_url(self) -> None:
        """Test the authenticated URL layout."""
        settings = FeedSettings(access_token="tok", client_id="1000001")
        assert build_feed_url(settings) == (
            "wss://api-feed.dhan.co?version=2&token=tok&clientId=1000001&authType=2"
        )
        assert settings.url == build_feed_url(settings)

    def test_sanitize_url_strips_credentials(self) -> None:
        """Test that token and client id never reach logs."""
        url = "wss://api-feed.dhan.co?version=2&token=secret&clientId=99&authType=2"
        clean = sanitize_url(url)
        assert "secret" not in clean
        assert "99" not in clean
        assert clean == "wss://api-feed.dhan.co?version=2&authType=2"
