"""
Shared types, enums, and data structures for the market feed module.

Tick variants live in decoder.py next to the code that produces them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ConnectionState(str, Enum):
    """State machine for the feed connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    COOLING_OFF = "cooling_off"
    CLOSING = "closing"
    CLOSED = "closed"


class FeedEvent(str, Enum):
    """Events a client can register callbacks for."""

    TICK = "tick"
    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"


class CommandOp(str, Enum):
    """Subscription command operations."""

    SUB = "sub"
    UNSUB = "unsub"


class SessionOutcome(str, Enum):
    """How a single connection session ended."""

    CLEAN = "clean"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class Instrument:
    """A tradable identified by exchange segment and security id."""

    exchange_segment: str
    security_id: str

    @property
    def key(self) -> str:
        """Canonical identity, e.g. "NSE_EQ:1333"."""
        return f"{self.exchange_segment}:{self.security_id}"

    @classmethod
    def from_key(cls, key: str) -> "Instrument":
        segment, sep, security_id = key.partition(":")
        if not sep or not segment or not security_id:
            raise ValueError(f"Invalid instrument key: {key!r}")
        return cls(segment, security_id)

    def to_wire(self) -> dict[str, str]:
        return {"ExchangeSegment": self.exchange_segment, "SecurityId": self.security_id}


@dataclass(frozen=True)
class Command:
    """A pending subscribe or unsubscribe request."""

    op: CommandOp
    payload: tuple[Instrument, ...]


@dataclass(frozen=True)
class CloseInfo:
    """Details of a socket close reported to listeners."""

    code: Optional[int]
    reason: str = ""
    initiated_locally: bool = False

    @property
    def is_rate_limited(self) -> bool:
        return "429" in self.reason


@dataclass
class ConnectionMetrics:
    """Counters for the feed connection."""

    sessions_opened: int = 0
    reconnections: int = 0
    rate_limited: int = 0
    frames_received: int = 0
    bytes_received: int = 0
    messages_sent: int = 0
    errors: int = 0


@dataclass
class ConnectionHealth:
    """Health snapshot for the feed connection."""

    state: ConnectionState
    url: str
    connected_since: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    reconnect_count: int = 0
    message_count: int = 0
    error_count: int = 0
    subscription_count: int = 0
    last_error: Optional[str] = None
    cool_off_remaining_s: float = 0.0

    @property
    def is_healthy(self) -> bool:
        """Check if connection is in a healthy state."""
        return self.state == ConnectionState.CONNECTED

    @property
    def uptime_s(self) -> Optional[float]:
        """Connection uptime in seconds, or None if not connected."""
        if self.connected_since is None:
            return None
        return (datetime.now(timezone.utc) - self.connected_since).total_seconds()
