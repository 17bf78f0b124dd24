#!/usr/bin/env python3
"""
Live Market Feed - Streaming Showcase

Streams a few NSE instruments in quote mode and prints every tick until
interrupted. A singleton lock keeps a second copy of this script from opening
a duplicate session with the same credentials.

Requires DHAN_ACCESS_TOKEN and DHAN_CLIENT_ID in the environment.

Usage:
    python examples/stream_ticks.py
"""

from __future__ import annotations

import logging
import time
from typing import Any

from dhanfeed.live import FeedSettings, MarketFeedClient, SingletonLock

# =============================================================================
# Instruments
# =============================================================================

WATCHLIST = [
    {"ExchangeSegment": "IDX_I", "SecurityId": "13"},  # NIFTY 50
    {"ExchangeSegment": "NSE_EQ", "SecurityId": "1333"},  # HDFCBANK
    {"ExchangeSegment": "NSE_EQ", "SecurityId": "11536"},  # TCS
]


# =============================================================================
# Callbacks
# =============================================================================


def on_tick(tick: Any) -> None:
    print(tick.to_dict())


def on_close(info: Any) -> None:
    print(f"closed: code={info.code} reason={info.reason!r}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    settings = FeedSettings.from_env()

    with SingletonLock(settings.access_token, settings.client_id):
        client = MarketFeedClient("quote", settings=settings)
        client.on("tick", on_tick).on("close", on_close)
        client.start()
        client.subscribe_many(WATCHLIST)
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            pass
        finally:
            client.disconnect()


if __name__ == "__main__":
    main()
