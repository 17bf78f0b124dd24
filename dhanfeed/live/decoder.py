"""
Binary packet decoder for the market feed.

Turns one binary WebSocket frame into a typed tick, or decides the frame is
to be dropped. Decoding never raises: malformed input yields None and a debug
log line.

Usage:
    tick = decode(frame)
    if tick is not None:
        print(tick.kind, tick.to_dict())
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional, Union

from dhanfeed.live import packets
from dhanfeed.live.packets import FeedKind, price
from dhanfeed.live.segments import from_code

logger = logging.getLogger(__name__)


def _tick_dict(tick: Any) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": tick.kind.value}
    out.update(asdict(tick))
    return out


@dataclass(frozen=True, slots=True)
class DepthLevel:
    """One level of the five-level order book carried by full packets."""

    bid_quantity: int
    ask_quantity: int
    bid_orders: int
    ask_orders: int
    bid: float
    ask: float


@dataclass(frozen=True, slots=True)
class TickerTick:
    segment: str
    security_id: str
    ltp: float
    ts: int

    @property
    def kind(self) -> FeedKind:
        return FeedKind.TICKER

    def to_dict(self) -> dict[str, Any]:
        return _tick_dict(self)


@dataclass(frozen=True, slots=True)
class QuoteTick:
    segment: str
    security_id: str
    ltp: float
    ts: int
    last_trade_qty: int
    atp: float
    volume: int
    total_buy_qty: int
    total_sell_qty: int
    day_open: float
    day_high: float
    day_low: float
    day_close: float

    @property
    def kind(self) -> FeedKind:
        return FeedKind.QUOTE

    def to_dict(self) -> dict[str, Any]:
        return _tick_dict(self)


@dataclass(frozen=True, slots=True)
class FullTick:
    """Quote fields plus open interest and the best depth level at top level."""

    segment: str
    security_id: str
    ltp: float
    ts: int
    last_trade_qty: int
    atp: float
    volume: int
    total_buy_qty: int
    total_sell_qty: int
    oi: int
    oi_high: int
    oi_low: int
    day_open: float
    day_high: float
    day_low: float
    day_close: float
    bid: Optional[float]
    ask: Optional[float]
    depth: tuple[DepthLevel, ...] = ()

    @property
    def kind(self) -> FeedKind:
        return FeedKind.FULL

    def to_dict(self) -> dict[str, Any]:
        return _tick_dict(self)


@dataclass(frozen=True, slots=True)
class OiTick:
    segment: str
    security_id: str
    oi: int

    @property
    def kind(self) -> FeedKind:
        return FeedKind.OI

    def to_dict(self) -> dict[str, Any]:
        return _tick_dict(self)


@dataclass(frozen=True, slots=True)
class PrevCloseTick:
    segment: str
    security_id: str
    prev_close: float
    oi_prev: int

    @property
    def kind(self) -> FeedKind:
        return FeedKind.PREV_CLOSE

    def to_dict(self) -> dict[str, Any]:
        return _tick_dict(self)


@dataclass(frozen=True, slots=True)
class DepthDeltaTick:
    """Incremental update for one side of the book."""

    side: FeedKind
    segment: str
    security_id: str
    bid_quantity: int
    ask_quantity: int
    bid_orders: int
    ask_orders: int
    bid: float
    ask: float

    @property
    def kind(self) -> FeedKind:
        return self.side

    def to_dict(self) -> dict[str, Any]:
        out = _tick_dict(self)
        del out["side"]
        return out


@dataclass(frozen=True, slots=True)
class RawPacketTick:
    """Index and market-status frames, passed through unparsed."""

    raw_kind: FeedKind
    segment: str
    security_id: str
    raw: bytes

    @property
    def kind(self) -> FeedKind:
        return self.raw_kind

    def to_dict(self) -> dict[str, Any]:
        out = _tick_dict(self)
        del out["raw_kind"]
        return out


@dataclass(frozen=True, slots=True)
class DisconnectNotice:
    """Server notice that the session is about to end; never delivered as a tick."""

    segment: str
    security_id: str
    code: int

    @property
    def kind(self) -> FeedKind:
        return FeedKind.DISCONNECT


@dataclass(frozen=True, slots=True)
class UnknownPacket:
    feed_response_code: int
    segment: str
    security_id: str
    length: int

    @property
    def kind(self) -> FeedKind:
        return FeedKind.UNKNOWN


Tick = Union[
    TickerTick,
    QuoteTick,
    FullTick,
    OiTick,
    PrevCloseTick,
    DepthDeltaTick,
    RawPacketTick,
]

Packet = Union[Tick, DisconnectNotice, UnknownPacket]


def _depth_level(level: Any) -> DepthLevel:
    return DepthLevel(
        bid_quantity=int(level["bid_quantity"]),
        ask_quantity=int(level["ask_quantity"]),
        bid_orders=int(level["no_of_bid_orders"]),
        ask_orders=int(level["no_of_ask_orders"]),
        bid=price(level["bid_price"]),
        ask=price(level["ask_price"]),
    )


def _quote_fields(body: Any) -> dict[str, Any]:
    return {
        "ltp": price(body["ltp"]),
        "ts": int(body["ltt"]),
        "last_trade_qty": int(body["last_trade_qty"]),
        "atp": price(body["atp"]),
        "volume": int(body["volume"]),
        "total_buy_qty": int(body["total_buy_qty"]),
        "total_sell_qty": int(body["total_sell_qty"]),
        "day_open": price(body["day_open"]),
        "day_high": price(body["day_high"]),
        "day_low": price(body["day_low"]),
        "day_close": price(body["day_close"]),
    }


def _build(kind: FeedKind, segment: str, sid: str, data: bytes, code: int) -> Packet:
    if kind in (FeedKind.INDEX, FeedKind.MARKET_STATUS):
        return RawPacketTick(kind, segment, sid, bytes(data[packets.HEADER_SIZE :]))

    if kind == FeedKind.UNKNOWN:
        return UnknownPacket(code, segment, sid, len(data))

    body = packets.read_body(data, kind)

    if kind == FeedKind.TICKER:
        return TickerTick(segment, sid, price(body["ltp"]), int(body["ltt"]))
    elif kind == FeedKind.QUOTE:
        return QuoteTick(segment=segment, security_id=sid, **_quote_fields(body))
    elif kind == FeedKind.FULL:
        depth = tuple(_depth_level(level) for level in body["market_depth"])
        best = depth[0] if depth else None
        return FullTick(
            segment=segment,
            security_id=sid,
            oi=int(body["open_interest"]),
            oi_high=int(body["highest_oi"]),
            oi_low=int(body["lowest_oi"]),
            bid=best.bid if best else None,
            ask=best.ask if best else None,
            depth=depth,
            **_quote_fields(body),
        )
    elif kind == FeedKind.OI:
        return OiTick(segment, sid, int(body["open_interest"]))
    elif kind == FeedKind.PREV_CLOSE:
        return PrevCloseTick(segment, sid, price(body["prev_close"]), int(body["oi_prev"]))
    elif kind in (FeedKind.DEPTH_BID, FeedKind.DEPTH_ASK):
        level = _depth_level(body)
        return DepthDeltaTick(
            side=kind,
            segment=segment,
            security_id=sid,
            bid_quantity=level.bid_quantity,
            ask_quantity=level.ask_quantity,
            bid_orders=level.bid_orders,
            ask_orders=level.ask_orders,
            bid=level.bid,
            ask=level.ask,
        )
    else:  # FeedKind.DISCONNECT
        return DisconnectNotice(segment, sid, int(body["disconnection_code"]))


def parse_packet(data: bytes) -> Optional[Packet]:
    """
    Parse a frame into its packet variant.

    Returns UnknownPacket for unrecognized feed response codes and None when
    the buffer is malformed or truncated.
    """
    try:
        header = packets.read_header(data)
        code = int(header["feed_response_code"])
        kind = FeedKind.from_code(code)
        segment = from_code(int(header["exchange_segment"]))
        sid = str(int(header["security_id"]))
        return _build(kind, segment, sid, data, code)
    except Exception as e:
        logger.debug(f"Dropping undecodable frame: {e}")
        return None


def decode(data: bytes) -> Optional[Tick]:
    """Decode a frame into a deliverable tick, or None if it should be dropped."""
    pkt = parse_packet(data)
    if pkt is None:
        return None
    if isinstance(pkt, DisconnectNotice):
        logger.warning(
            f"Server disconnect notice code={pkt.code} "
            f"seg={pkt.segment} sid={pkt.security_id}"
        )
        return None
    if isinstance(pkt, UnknownPacket):
        logger.debug(f"Unknown feed response code {pkt.feed_response_code} ({pkt.length} bytes)")
        return None
    return pkt
