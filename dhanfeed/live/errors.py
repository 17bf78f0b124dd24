"""
Custom exceptions for the market feed module.

Exception hierarchy:
- FeedError (base)
  - ConfigurationError: Invalid configuration or missing credentials
  - ConnectionError: WebSocket connection issues
  - RateLimitError: Server rejected the session with a 429
  - PacketDecodeError: Malformed binary packets
  - SubscriptionError: Subscription command failures
  - SingletonLockError: Another process already streams with these credentials
"""

from __future__ import annotations

from typing import Any, Optional


class FeedError(Exception):
    """Base exception for all market feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConfigurationError(FeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class ConnectionError(FeedError):
    """Raised when the feed socket fails or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        close_code: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.close_code = close_code
        details = details or {}
        if url:
            details["url"] = url
        if close_code is not None:
            details["close_code"] = close_code
        super().__init__(message, component=component, details=details)


class RateLimitError(FeedError):
    """Raised when the server closes the session because of rate limiting."""

    def __init__(
        self,
        message: str,
        *,
        cool_off_s: Optional[float] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.cool_off_s = cool_off_s
        details = details or {}
        if cool_off_s is not None:
            details["cool_off_s"] = cool_off_s
        super().__init__(message, component=component, details=details)


class PacketDecodeError(FeedError):
    """Raised when a binary packet cannot be decoded."""

    def __init__(
        self,
        message: str,
        *,
        feed_response_code: Optional[int] = None,
        length: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.feed_response_code = feed_response_code
        self.length = length
        details = details or {}
        if feed_response_code is not None:
            details["feed_response_code"] = feed_response_code
        if length is not None:
            details["length"] = length
        # Raw bytes stay out of details to keep logs readable
        super().__init__(message, component=component, details=details)


class SubscriptionError(FeedError):
    """Raised when a subscription command cannot be sent."""

    def __init__(
        self,
        message: str,
        *,
        request_code: Optional[int] = None,
        instrument_count: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.request_code = request_code
        self.instrument_count = instrument_count
        details = details or {}
        if request_code is not None:
            details["request_code"] = request_code
        if instrument_count is not None:
            details["instrument_count"] = instrument_count
        super().__init__(message, component=component, details=details)


class SingletonLockError(FeedError):
    """Raised when another process holds the feed lock for the same credentials."""

    def __init__(
        self,
        message: str,
        *,
        pid: Optional[str] = None,
        path: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.pid = pid
        self.path = path
        details = details or {}
        if pid:
            details["pid"] = pid
        if path:
            details["path"] = path
        super().__init__(message, component=component, details=details)
