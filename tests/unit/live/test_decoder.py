"""
Unit tests for the binary packet decoder.
"""

import logging
import random
import struct

import pytest

from dhanfeed.live.decoder import (
    DepthDeltaTick,
    DisconnectNotice,
    FullTick,
    OiTick,
    PrevCloseTick,
    QuoteTick,
    RawPacketTick,
    TickerTick,
    UnknownPacket,
    decode,
    parse_packet,
)
from dhanfeed.live.packets import FULL, HEADER, QUOTE, FeedKind


def frame(code: int, body: bytes = b"", segment: int = 1, security_id: int = 1333) -> bytes:
    """Build a feed frame: u8 code, u16 BE length, u8 segment, i32 LE security id."""
    length = 8 + len(body)
    return struct.pack("<B", code) + struct.pack(">H", length) + struct.pack("<Bi", segment, security_id) + body


def quote_body(ltp: float = 2450.5) -> bytes:
    return struct.pack(
        "<fHIfIiiffff",
        ltp,  # ltp
        25,  # last_trade_qty
        1700000000,  # ltt
        2449.75,  # atp
        123456,  # volume
        5000,  # total_sell_qty
        7000,  # total_buy_qty
        2400.0,  # day_open
        2410.0,  # day_close
        2460.0,  # day_high
        2390.0,  # day_low
    )


def depth_level(bid: float, ask: float, bid_qty: int = 100, ask_qty: int = 200) -> bytes:
    return struct.pack("<IIHHff", bid_qty, ask_qty, 3, 4, bid, ask)


def full_body() -> bytes:
    core = struct.pack("<fHIfIii", 101.25, 10, 1700000100, 100.5, 9999, 300, 400)
    oi = struct.pack("<iii", 150000, 160000, 140000)
    ohlc = struct.pack("<ffff", 99.0, 98.0, 102.0, 97.5)
    depth = b"".join(depth_level(101.0 - i * 0.05, 101.5 + i * 0.05) for i in range(5))
    return core + oi + ohlc + depth


class TestLayouts:
    """Tests for layout sizes."""

    def test_sizes(self) -> None:
        """Test header and body sizes match the wire."""
        assert HEADER.itemsize == 8
        assert QUOTE.itemsize == 42
        assert FULL.itemsize == 154


class TestDecodeTicks:
    """Tests for each tick variant."""

    def test_ticker_example(self) -> None:
        """Test ticker decode with LTP 123.45 and LTT 1700000000."""
        tick = decode(frame(2, struct.pack("<fi", 123.45, 1700000000)))

        assert isinstance(tick, TickerTick)
        assert tick.to_dict() == {
            "kind": "ticker",
            "segment": "NSE_EQ",
            "security_id": "1333",
            "ltp": 123.45,
            "ts": 1700000000,
        }

    def test_quote(self) -> None:
        """Test quote fields."""
        tick = decode(frame(4, quote_body(), segment=2, security_id=43854))

        assert isinstance(tick, QuoteTick)
        assert tick.kind == FeedKind.QUOTE
        assert tick.segment == "NSE_FNO"
        assert tick.security_id == "43854"
        assert tick.ltp == 2450.5
        assert tick.atp == 2449.75
        assert tick.volume == 123456
        assert tick.total_buy_qty == 7000
        assert tick.total_sell_qty == 5000
        assert (tick.day_open, tick.day_high, tick.day_low, tick.day_close) == (2400.0, 2460.0, 2390.0, 2410.0)

    def test_full_surfaces_first_depth_level(self) -> None:
        """Test full packets expose OI and the best bid/ask."""
        tick = decode(frame(8, full_body()))

        assert isinstance(tick, FullTick)
        assert tick.ltp == 101.25
        assert (tick.oi, tick.oi_high, tick.oi_low) == (150000, 160000, 140000)
        assert tick.bid == 101.0
        assert tick.ask == 101.5
        assert len(tick.depth) == 5
        assert tick.depth[4].bid == 100.8
        assert tick.depth[0].bid_orders == 3

    def test_oi(self) -> None:
        """Test OI-only packets."""
        tick = decode(frame(5, struct.pack("<i", 987654)))
        assert isinstance(tick, OiTick)
        assert tick.oi == 987654

    def test_prev_close(self) -> None:
        """Test previous-close packets."""
        tick = decode(frame(6, struct.pack("<fi", 1520.35, 42000)))
        assert isinstance(tick, PrevCloseTick)
        assert tick.prev_close == 1520.35
        assert tick.oi_prev == 42000

    @pytest.mark.parametrize("code,kind", [(41, FeedKind.DEPTH_BID), (51, FeedKind.DEPTH_ASK)])
    def test_depth_delta(self, code: int, kind: FeedKind) -> None:
        """Test depth delta packets keep their side."""
        tick = decode(frame(code, depth_level(10.5, 10.55, bid_qty=7, ask_qty=9)))
        assert isinstance(tick, DepthDeltaTick)
        assert tick.kind == kind
        assert (tick.bid_quantity, tick.ask_quantity) == (7, 9)
        assert tick.to_dict()["kind"] == kind.value
        assert "side" not in tick.to_dict()

    @pytest.mark.parametrize("code,kind", [(1, FeedKind.INDEX), (7, FeedKind.MARKET_STATUS)])
    def test_raw_passthrough(self, code: int, kind: FeedKind) -> None:
        """Test index and market-status bodies pass through unparsed."""
        tick = decode(frame(code, b"\x01\x02\x03", segment=0, security_id=13))
        assert isinstance(tick, RawPacketTick)
        assert tick.kind == kind
        assert tick.raw == b"\x01\x02\x03"
        assert tick.segment == "IDX_I"


class TestDroppedFrames:
    """Tests for frames that never reach listeners."""

    def test_disconnect_notice(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test disconnect packets are parsed but not delivered."""
        data = frame(50, struct.pack(">h", 805))

        pkt = parse_packet(data)
        assert isinstance(pkt, DisconnectNotice)
        assert pkt.code == 805

        with caplog.at_level(logging.WARNING, logger="dhanfeed.live.decoder"):
            assert decode(data) is None
        assert "code=805" in caplog.text

    def test_unknown_code(self) -> None:
        """Test unknown feed codes yield an explicit unknown variant."""
        data = frame(99, b"\x00" * 4)
        pkt = parse_packet(data)
        assert isinstance(pkt, UnknownPacket)
        assert pkt.feed_response_code == 99
        assert decode(data) is None

    def test_unknown_segment_degrades(self) -> None:
        """Test an unknown segment byte surfaces as its number."""
        tick = decode(frame(2, struct.pack("<fi", 1.0, 1), segment=42))
        assert tick is not None
        assert tick.segment == "42"


class TestDecoderRobustness:
    """Tests that decoding never raises."""

    def test_truncated_body(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a quote frame cut short returns None with a debug log."""
        data = frame(4, quote_body())[:20]
        with caplog.at_level(logging.DEBUG, logger="dhanfeed.live.decoder"):
            assert decode(data) is None
        assert "undecodable" in caplog.text

    @pytest.mark.parametrize("data", [b"", b"\x02", b"\x02\x00\x10", None, "text"])
    def test_short_or_wrong_input(self, data: object) -> None:
        """Test short buffers and non-bytes input."""
        assert decode(data) is None  # type: ignore[arg-type]

    def test_random_buffers(self) -> None:
        """Test random byte buffers never raise."""
        rng = random.Random(7)
        for _ in range(500):
            size = rng.randint(0, 200)
            data = bytes(rng.getrandbits(8) for _ in range(size))
            decode(data)
