"""
Subscription state tracking.

Keeps the set of instruments believed to be subscribed on the server so the
connection only sends deltas, and can replay the whole set after a reconnect.
Marking is optimistic: the protocol has no subscribe acknowledgment, so an
instrument counts as subscribed once its request has been sent.
"""

from __future__ import annotations

import threading
from typing import Iterable

from dhanfeed.live.types import Instrument


class SubscriptionState:
    """Thread-safe set of subscribed instruments, keyed by ``Instrument.key``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribed: dict[str, Instrument] = {}

    def want_sub(self, instruments: Iterable[Instrument]) -> list[Instrument]:
        """Instruments from ``instruments`` that are not yet subscribed."""
        with self._lock:
            return [i for i in instruments if i.key not in self._subscribed]

    def mark_subscribed(self, instruments: Iterable[Instrument]) -> None:
        with self._lock:
            for i in instruments:
                self._subscribed[i.key] = i

    def want_unsub(self, instruments: Iterable[Instrument]) -> list[Instrument]:
        """Instruments from ``instruments`` that are currently subscribed."""
        with self._lock:
            return [i for i in instruments if i.key in self._subscribed]

    def mark_unsubscribed(self, instruments: Iterable[Instrument]) -> None:
        with self._lock:
            for i in instruments:
                self._subscribed.pop(i.key, None)

    def snapshot(self) -> list[Instrument]:
        """Copy of the subscribed set, in first-subscribed order."""
        with self._lock:
            return list(self._subscribed.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribed)

    def __contains__(self, instrument: object) -> bool:
        if not isinstance(instrument, Instrument):
            return False
        with self._lock:
            return instrument.key in self._subscribed
