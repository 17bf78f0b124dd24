"""
Configuration types for the market feed module.

Provides the feed modes with their request codes, validated connection tuning,
and credential settings resolved from a CredentialsProvider.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dhanfeed.adapters.env_provider import EnvCredentialsProvider, MissingCredentialError
from dhanfeed.live.errors import ConfigurationError
from dhanfeed.ports.credentials_provider import CredentialsProvider

FEED_BASE_URL = "wss://api-feed.dhan.co"
DEFAULT_WS_VERSION = 2
AUTH_TYPE = 2
USER_AGENT = "dhanfeed-python"

# Request code asking the server to end the session
DISCONNECT_REQUEST_CODE = 12

# Query parameters that carry credentials and must never reach the logs
SENSITIVE_QUERY_KEYS = frozenset({"token", "clientId"})


class FeedMode(str, Enum):
    """Streaming modes and the request codes that drive them."""

    TICKER = "ticker"
    QUOTE = "quote"
    FULL = "full"

    @property
    def subscribe_code(self) -> int:
        return _SUBSCRIBE_CODES[self]

    @property
    def unsubscribe_code(self) -> int:
        return _UNSUBSCRIBE_CODES[self]

    @classmethod
    def parse(cls, value: Union["FeedMode", str]) -> "FeedMode":
        """Accept an enum member or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown feed mode: {value!r}",
                field="mode",
                value=value,
            ) from e


_SUBSCRIBE_CODES: dict[FeedMode, int] = {
    FeedMode.TICKER: 15,
    FeedMode.QUOTE: 17,
    FeedMode.FULL: 21,
}

_UNSUBSCRIBE_CODES: dict[FeedMode, int] = {
    FeedMode.TICKER: 16,
    FeedMode.QUOTE: 18,
    FeedMode.FULL: 22,
}


@dataclass(frozen=True)
class ConnectionConfig:
    """Tuning for the reconnecting feed connection."""

    # Reconnect backoff
    base_backoff_s: float = 2.0
    max_backoff_s: float = 90.0
    backoff_jitter: float = 0.2  # up to +20% of the sleep

    # Fixed wait after the server rejects a session with 429
    cool_off_s: float = 60.0

    # Subscription flush cadence and batching
    flush_interval_s: float = 0.25
    max_instruments_per_message: int = 100

    # Transport
    connect_timeout_s: float = 30.0
    heartbeat_s: Optional[float] = 30.0
    stop_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        if self.base_backoff_s <= 0:
            raise ConfigurationError(
                "base_backoff_s must be positive",
                field="base_backoff_s",
                value=self.base_backoff_s,
            )
        if self.max_backoff_s < self.base_backoff_s:
            raise ConfigurationError(
                "max_backoff_s must be >= base_backoff_s",
                field="max_backoff_s",
                value=self.max_backoff_s,
            )
        if not (0 <= self.backoff_jitter <= 1):
            raise ConfigurationError(
                "backoff_jitter must be between 0 and 1",
                field="backoff_jitter",
                value=self.backoff_jitter,
            )
        if self.cool_off_s < 0:
            raise ConfigurationError(
                "cool_off_s must be non-negative",
                field="cool_off_s",
                value=self.cool_off_s,
            )
        if self.flush_interval_s <= 0:
            raise ConfigurationError(
                "flush_interval_s must be positive",
                field="flush_interval_s",
                value=self.flush_interval_s,
            )
        if self.max_instruments_per_message <= 0:
            raise ConfigurationError(
                "max_instruments_per_message must be positive",
                field="max_instruments_per_message",
                value=self.max_instruments_per_message,
            )
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.heartbeat_s is not None and self.heartbeat_s <= 0:
            raise ConfigurationError(
                "heartbeat_s must be positive or None",
                field="heartbeat_s",
                value=self.heartbeat_s,
            )


class FeedSettings(BaseModel):
    """Credentials and endpoint for the market feed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    access_token: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    ws_version: int = Field(default=DEFAULT_WS_VERSION, ge=1)
    base_url: str = FEED_BASE_URL

    @classmethod
    def from_provider(cls, provider: CredentialsProvider) -> "FeedSettings":
        """Build settings from a credentials provider.

        Raises:
            ConfigurationError: If the token or client id is missing or invalid
        """
        try:
            token = provider.get("access_token")
            client_id = provider.get("client_id")
        except MissingCredentialError as e:
            raise ConfigurationError(
                f"Missing feed credential: {e}",
                field=e.name,
                component="FeedSettings",
            ) from e

        values: dict[str, object] = {"access_token": token, "client_id": client_id}
        version = _optional(provider, "ws_version")
        if version is not None:
            values["ws_version"] = version
        return cls.validated(**values)

    @classmethod
    def from_env(cls, prefix: str = "DHAN_") -> "FeedSettings":
        """Build settings from DHAN_ACCESS_TOKEN, DHAN_CLIENT_ID and DHAN_WS_VERSION."""
        return cls.from_provider(EnvCredentialsProvider(prefix=prefix))

    @classmethod
    def validated(cls, **values: object) -> "FeedSettings":
        """Construct settings, translating validation failures to ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ConfigurationError(
                f"Invalid feed settings: {first.get('msg')}",
                field=loc or None,
                component="FeedSettings",
            ) from e

    @property
    def url(self) -> str:
        return build_feed_url(self)


def _optional(provider: CredentialsProvider, name: str) -> Optional[str]:
    try:
        return provider.get(name)
    except ValueError:
        return None


def build_feed_url(settings: FeedSettings) -> str:
    """Compose the authenticated feed URL for the given settings."""
    query = urlencode(
        {
            "version": settings.ws_version,
            "token": settings.access_token,
            "clientId": settings.client_id,
            "authType": AUTH_TYPE,
        }
    )
    return f"{settings.base_url}?{query}"


def sanitize_url(url: str) -> str:
    """Return the URL with credential query parameters removed, for logging."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<unparseable url>"
    kept = [(k, v) for k, v in parse_qsl(parts.query) if k not in SENSITIVE_QUERY_KEYS]
    return urlunsplit(parts._replace(query=urlencode(kept)))
