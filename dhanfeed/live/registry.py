"""
Process-wide registry of running feed clients.

An exit hook, installed at most once per registry, stops every registered
client when the interpreter shuts down.
"""

from __future__ import annotations

import atexit
import logging
import threading
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class Stoppable(Protocol):
    def stop(self) -> Any: ...


class ClientRegistry:
    """Thread-safe set of live clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: list[Stoppable] = []

    def register(self, client: Stoppable) -> None:
        with self._lock:
            if not any(c is client for c in self._clients):
                self._clients.append(client)

    def unregister(self, client: Stoppable) -> None:
        with self._lock:
            self._clients = [c for c in self._clients if c is not client]

    @property
    def clients(self) -> list[Stoppable]:
        with self._lock:
            return list(self._clients)

    def stop_all(self) -> None:
        """Stop every registered client, logging individual failures, then clear."""
        for client in self.clients:
            try:
                client.stop()
            except Exception as e:
                logger.error(f"Failed to stop {client!r}: {e}")
        with self._lock:
            self._clients.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)


_registry: Optional[ClientRegistry] = None
_registry_lock = threading.Lock()

_hooked: list[ClientRegistry] = []
_hook_lock = threading.Lock()


def get_registry() -> ClientRegistry:
    """The process-wide registry, created on first use."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = ClientRegistry()
        return _registry


def install_exit_hook(registry: Optional[ClientRegistry] = None) -> bool:
    """
    Register ``registry.stop_all`` with atexit, once per registry.

    Defaults to the process-wide registry. Returns True if this call
    installed the hook.
    """
    registry = registry if registry is not None else get_registry()
    with _hook_lock:
        if any(r is registry for r in _hooked):
            return False
        atexit.register(registry.stop_all)
        _hooked.append(registry)
        return True
