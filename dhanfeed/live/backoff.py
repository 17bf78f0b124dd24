"""Exponential reconnect backoff with a cap and additive jitter."""

from __future__ import annotations

import random
from typing import Optional


class ReconnectBackoff:
    """
    Doubling backoff for failed sessions.

    ``next_delay()`` returns ``min(current, cap)`` plus up to ``jitter`` of that
    value, then doubles the stored backoff. ``reset()`` restores the base after
    a clean session.
    """

    def __init__(
        self,
        base_s: float = 2.0,
        cap_s: float = 90.0,
        jitter: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._base = base_s
        self._cap = cap_s
        self._jitter = jitter
        self._rng = rng or random.Random()
        self._current = base_s

    @property
    def current(self) -> float:
        """Backoff that the next failure will sleep (before jitter)."""
        return self._current

    def next_delay(self) -> float:
        delay = min(self._current, self._cap)
        if self._jitter:
            delay += self._rng.uniform(0, delay * self._jitter)
        self._current = min(self._current * 2, self._cap)
        return delay

    def reset(self) -> None:
        self._current = self._base
