"""
Unit tests for SubscriptionState and CommandBus.
"""

import threading

from dhanfeed.live.cmd_bus import CommandBus
from dhanfeed.live.sub_state import SubscriptionState
from dhanfeed.live.types import CommandOp, Instrument

A = Instrument("NSE_EQ", "1333")
B = Instrument("NSE_FNO", "43854")


class TestSubscriptionState:
    """Tests for subscription diffing."""

    def test_want_sub_before_and_after_mark(self) -> None:
        """Test diffing is idempotent once marked."""
        state = SubscriptionState()
        assert state.want_sub([A]) == [A]
        state.mark_subscribed([A])
        assert state.want_sub([A]) == []
        assert state.want_sub([A, B]) == [B]

    def test_want_sub_does_not_mutate(self) -> None:
        """Test want_sub leaves the set unchanged."""
        state = SubscriptionState()
        state.want_sub([A])
        assert len(state) == 0

    def test_unsubscribe(self) -> None:
        """Test unsub diffing only returns subscribed instruments."""
        state = SubscriptionState()
        state.mark_subscribed([A])
        assert state.want_unsub([A, B]) == [A]
        state.mark_unsubscribed([A])
        state.mark_unsubscribed([A])
        assert state.want_unsub([A]) == []
        assert A not in state

    def test_snapshot_is_a_copy(self) -> None:
        """Test snapshot returns every subscribed instrument."""
        state = SubscriptionState()
        state.mark_subscribed([A, B, A])
        snap = state.snapshot()
        assert snap == [A, B]
        snap.clear()
        assert len(state) == 2

    def test_concurrent_marking(self) -> None:
        """Test marking from several threads loses nothing."""
        state = SubscriptionState()

        def worker(offset: int) -> None:
            state.mark_subscribed(Instrument("NSE_EQ", str(offset + i)) for i in range(500))

        threads = [threading.Thread(target=worker, args=(n * 500,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(state) == 2000


class TestCommandBus:
    """Tests for CommandBus."""

    def test_drain_empty(self) -> None:
        """Test draining an idle bus returns immediately."""
        assert CommandBus().drain() == []

    def test_drain_returns_all_in_order(self) -> None:
        """Test queued commands come back in arrival order."""
        bus = CommandBus()
        bus.sub([A])
        bus.unsub([B])
        assert len(bus) == 2

        commands = bus.drain()

        assert [c.op for c in commands] == [CommandOp.SUB, CommandOp.UNSUB]
        assert commands[0].payload == (A,)
        assert bus.drain() == []

    def test_empty_payload_not_queued(self) -> None:
        """Test empty lists are ignored."""
        bus = CommandBus()
        bus.sub([])
        assert bus.drain() == []
