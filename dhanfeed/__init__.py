"""
dhanfeed: real-time market data streaming for the Dhan feed.

Quick start:
    import dhanfeed

    client = dhanfeed.connect("quote", lambda tick: print(tick.to_dict()))
    client.subscribe_one("NSE_EQ", 1333)
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from dhanfeed.live import MarketFeedClient
from dhanfeed.live.config import FeedMode, FeedSettings
from dhanfeed.live.registry import get_registry

__version__ = "0.1.0"


def connect(
    mode: Union[FeedMode, str] = FeedMode.TICKER,
    on_tick: Optional[Callable[[Any], None]] = None,
    *,
    settings: Optional[FeedSettings] = None,
) -> MarketFeedClient:
    """Create a client, attach ``on_tick`` and start it."""
    client = MarketFeedClient(mode, settings=settings)
    if on_tick is not None:
        client.on("tick", on_tick)
    return client.start()


def disconnect_all_local() -> None:
    """Stop every client started in this process."""
    get_registry().stop_all()


__all__ = ["MarketFeedClient", "FeedMode", "FeedSettings", "connect", "disconnect_all_local", "__version__"]
