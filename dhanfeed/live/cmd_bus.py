"""
Command bus between callers and the connection's flush cycle.

Producers on any thread enqueue subscribe/unsubscribe commands; the
connection drains them on its periodic flush without blocking.
"""

from __future__ import annotations

import queue
from typing import Iterable

from dhanfeed.live.types import Command, CommandOp, Instrument


class CommandBus:
    """Multi-producer, single-consumer queue of subscription commands."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Command] = queue.SimpleQueue()

    def sub(self, instruments: Iterable[Instrument]) -> None:
        self._put(CommandOp.SUB, instruments)

    def unsub(self, instruments: Iterable[Instrument]) -> None:
        self._put(CommandOp.UNSUB, instruments)

    def _put(self, op: CommandOp, instruments: Iterable[Instrument]) -> None:
        payload = tuple(instruments)
        if payload:
            self._queue.put(Command(op, payload))

    def drain(self) -> list[Command]:
        """Remove and return every queued command; empty list if none."""
        out: list[Command] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def __len__(self) -> int:
        return self._queue.qsize()
