"""
Binary layouts for the market feed.

Each inbound frame is an 8-byte header followed by a body whose layout is
selected by the header's feed response code. Layouts are expressed as numpy
structured dtypes with explicit per-field byte order:

    header      feed_response_code u8, message_length u16 (big-endian),
                exchange_segment u8, security_id i32 (little-endian)
    bodies      little-endian throughout, except the disconnect code
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

import numpy as np

from dhanfeed.live.errors import PacketDecodeError

HEADER_SIZE = 8
DEPTH_LEVELS = 5


class FeedKind(str, Enum):
    """Closed set of inbound packet kinds."""

    INDEX = "index"
    TICKER = "ticker"
    QUOTE = "quote"
    OI = "oi"
    PREV_CLOSE = "prev_close"
    MARKET_STATUS = "market_status"
    FULL = "full"
    DEPTH_BID = "depth_bid"
    DEPTH_ASK = "depth_ask"
    DISCONNECT = "disconnect"
    UNKNOWN = "unknown"

    @classmethod
    def from_code(cls, code: int) -> "FeedKind":
        return FEED_CODES.get(code, cls.UNKNOWN)


FEED_CODES: dict[int, FeedKind] = {
    1: FeedKind.INDEX,
    2: FeedKind.TICKER,
    4: FeedKind.QUOTE,
    5: FeedKind.OI,
    6: FeedKind.PREV_CLOSE,
    7: FeedKind.MARKET_STATUS,
    8: FeedKind.FULL,
    41: FeedKind.DEPTH_BID,
    50: FeedKind.DISCONNECT,
    51: FeedKind.DEPTH_ASK,
}

HEADER = np.dtype(
    [
        ("feed_response_code", "u1"),
        ("message_length", ">u2"),
        ("exchange_segment", "u1"),
        ("security_id", "<i4"),
    ]
)

TICKER = np.dtype([("ltp", "<f4"), ("ltt", "<i4")])

_QUOTE_CORE = [
    ("ltp", "<f4"),
    ("last_trade_qty", "<u2"),
    ("ltt", "<u4"),
    ("atp", "<f4"),
    ("volume", "<u4"),
    ("total_sell_qty", "<i4"),
    ("total_buy_qty", "<i4"),
]

_DAY_OHLC = [
    ("day_open", "<f4"),
    ("day_close", "<f4"),
    ("day_high", "<f4"),
    ("day_low", "<f4"),
]

QUOTE = np.dtype(_QUOTE_CORE + _DAY_OHLC)

DEPTH_LEVEL = np.dtype(
    [
        ("bid_quantity", "<u4"),
        ("ask_quantity", "<u4"),
        ("no_of_bid_orders", "<u2"),
        ("no_of_ask_orders", "<u2"),
        ("bid_price", "<f4"),
        ("ask_price", "<f4"),
    ]
)

FULL = np.dtype(
    _QUOTE_CORE
    + [
        ("open_interest", "<i4"),
        ("highest_oi", "<i4"),
        ("lowest_oi", "<i4"),
    ]
    + _DAY_OHLC
    + [("market_depth", DEPTH_LEVEL, (DEPTH_LEVELS,))]
)

OI = np.dtype([("open_interest", "<i4")])

PREV_CLOSE = np.dtype([("prev_close", "<f4"), ("oi_prev", "<i4")])

DISCONNECT = np.dtype([("disconnection_code", ">i2")])

BODY_LAYOUTS: dict[FeedKind, np.dtype] = {
    FeedKind.TICKER: TICKER,
    FeedKind.QUOTE: QUOTE,
    FeedKind.OI: OI,
    FeedKind.PREV_CLOSE: PREV_CLOSE,
    FeedKind.FULL: FULL,
    FeedKind.DEPTH_BID: DEPTH_LEVEL,
    FeedKind.DEPTH_ASK: DEPTH_LEVEL,
    FeedKind.DISCONNECT: DISCONNECT,
}


def read_record(data: bytes, dtype: np.dtype, offset: int = 0) -> np.void:
    """
    Read one structured record from ``data`` at ``offset``.

    Raises:
        PacketDecodeError: If the buffer is too short for the layout
    """
    end = offset + dtype.itemsize
    if len(data) < end:
        raise PacketDecodeError(
            f"Buffer too short: need {end} bytes, got {len(data)}",
            length=len(data),
            component="packets",
        )
    return np.frombuffer(data, dtype=dtype, count=1, offset=offset)[0]


def read_header(data: bytes) -> np.void:
    return read_record(data, HEADER)


def read_body(data: bytes, kind: FeedKind) -> Optional[np.void]:
    """Read the body for ``kind``; None for raw/unknown kinds."""
    layout = BODY_LAYOUTS.get(kind)
    if layout is None:
        return None
    return read_record(data, layout, HEADER_SIZE)


def price(value: np.floating) -> float:
    """
    Widen a wire float32 to a Python float without binary noise.

    Uses the shortest decimal that round-trips the float32, so a wire 123.45
    reads back as 123.45 rather than 123.44999694824219.
    """
    return float(np.format_float_positional(np.float32(value), unique=True, trim="-"))
