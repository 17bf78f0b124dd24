"""
Live Market Feed Module.

This module streams real-time market data over the broker's binary WebSocket
feed: subscriptions go out as JSON control frames, ticks come back as packed
binary packets.

Components:
- MarketFeedClient: Public façade; subscriptions, callbacks, lifecycle
- FeedConnection: Socket lifecycle, reconnect/backoff/cool-off, subscription flush
- SubscriptionState / CommandBus: Delta tracking and command hand-off
- decoder: Binary packet decoding into typed ticks
- ClientRegistry: Process-wide tracking with a single exit hook
- SingletonLock: One feed per credential pair across processes

Usage:
    from dhanfeed.live import MarketFeedClient

    client = MarketFeedClient(mode="ticker")
    client.on("tick", print)
    client.start()
    client.subscribe_many([{"ExchangeSegment": "NSE_EQ", "SecurityId": "1333"}])
"""

from dhanfeed.live.client import MarketFeedClient
from dhanfeed.live.config import ConnectionConfig, FeedMode, FeedSettings, build_feed_url
from dhanfeed.live.decoder import (
    DepthDeltaTick,
    FullTick,
    OiTick,
    PrevCloseTick,
    QuoteTick,
    RawPacketTick,
    Tick,
    TickerTick,
    decode,
    parse_packet,
)
from dhanfeed.live.errors import (
    ConfigurationError,
    ConnectionError,
    FeedError,
    PacketDecodeError,
    RateLimitError,
    SingletonLockError,
    SubscriptionError,
)
from dhanfeed.live.packets import FeedKind
from dhanfeed.live.registry import ClientRegistry, get_registry
from dhanfeed.live.segments import ExchangeSegment
from dhanfeed.live.singleton_lock import SingletonLock
from dhanfeed.live.types import CloseInfo, ConnectionHealth, ConnectionState, FeedEvent, Instrument

__all__ = [
    # Main entry point
    "MarketFeedClient",
    "FeedSettings",
    "ConnectionConfig",
    "FeedMode",
    "build_feed_url",
    # Types
    "Instrument",
    "ExchangeSegment",
    "FeedEvent",
    "FeedKind",
    "CloseInfo",
    "ConnectionState",
    "ConnectionHealth",
    # Ticks
    "Tick",
    "TickerTick",
    "QuoteTick",
    "FullTick",
    "OiTick",
    "PrevCloseTick",
    "DepthDeltaTick",
    "RawPacketTick",
    "decode",
    "parse_packet",
    # Process-wide
    "ClientRegistry",
    "get_registry",
    "SingletonLock",
    # Errors
    "FeedError",
    "ConfigurationError",
    "ConnectionError",
    "RateLimitError",
    "PacketDecodeError",
    "SubscriptionError",
    "SingletonLockError",
]
