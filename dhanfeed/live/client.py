"""
Public client for the market feed.

MarketFeedClient wraps one FeedConnection: it normalizes subscribe calls into
bus commands, decodes frames into ticks, and fans events out to callbacks.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Optional, Union

from dhanfeed.live import decoder
from dhanfeed.live.cmd_bus import CommandBus
from dhanfeed.live.config import ConnectionConfig, FeedMode, FeedSettings
from dhanfeed.live.connection import FeedConnection
from dhanfeed.live.errors import ConfigurationError
from dhanfeed.live.registry import ClientRegistry, get_registry, install_exit_hook
from dhanfeed.live.segments import SegmentLike, normalize_instruments
from dhanfeed.live.sub_state import SubscriptionState
from dhanfeed.live.types import CloseInfo, ConnectionHealth, FeedEvent

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]


class MarketFeedClient:
    """
    Streaming market data client.

    Usage:
        client = MarketFeedClient(mode="quote")
        client.on("tick", lambda tick: print(tick.to_dict()))
        client.start()
        client.subscribe_one("NSE_EQ", 1333)
        # ... later ...
        client.stop()

    Events and their payloads:
        tick   a decoded tick (see decoder.Tick)
        open   None
        close  CloseInfo
        error  the Exception raised inside the connection
    """

    def __init__(
        self,
        mode: Union[FeedMode, str] = FeedMode.TICKER,
        *,
        settings: Optional[FeedSettings] = None,
        url: Optional[str] = None,
        config: Optional[ConnectionConfig] = None,
        registry: Optional[ClientRegistry] = None,
        connection_factory: Optional[Callable[..., FeedConnection]] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Create a client; credentials are resolved here.

        Args:
            mode: ticker, quote or full
            settings: Feed credentials; read from the environment when omitted
            url: Override the feed URL built from settings
            config: Connection tuning
            registry: Registry to join on start; the process-wide one by default
            connection_factory: Builds the FeedConnection (keyword arguments)
            name: Name for logging purposes

        Raises:
            ConfigurationError: If the mode is unknown or credentials are missing
        """
        self._mode = FeedMode.parse(mode)
        self._settings = settings if settings is not None else FeedSettings.from_env()
        self._url = url or self._settings.url
        self._config = config or ConnectionConfig()
        self._registry = registry if registry is not None else get_registry()
        self._connection_factory = connection_factory or FeedConnection
        self._name = name or f"feed-{self._mode.value}"

        self._bus = CommandBus()
        self._state = SubscriptionState()
        self._connection: Optional[FeedConnection] = None
        self._started = False
        self._lock = threading.Lock()

        # Copy-on-write: emission iterates whatever tuple was current
        self._callbacks: dict[FeedEvent, tuple[Callback, ...]] = {e: () for e in FeedEvent}

    @property
    def mode(self) -> FeedMode:
        return self._mode

    @property
    def started(self) -> bool:
        return self._started

    @property
    def subscriptions(self) -> SubscriptionState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "MarketFeedClient":
        """Connect and begin streaming; calling again is a no-op."""
        with self._lock:
            if self._started:
                return self
            self._started = True
            self._connection = self._connection_factory(
                url=self._url,
                mode=self._mode,
                bus=self._bus,
                state=self._state,
                on_binary=self._handle_binary,
                config=self._config,
                on_open=self._handle_open,
                on_close=self._handle_close,
                on_error=self._handle_error,
                name=self._name,
            )

        self._registry.register(self)
        install_exit_hook(self._registry)
        self._connection.start()
        logger.info(f"[{self._name}] Client started")
        return self

    def stop(self) -> "MarketFeedClient":
        """Close the connection without notifying the server."""
        return self._shutdown(graceful=False)

    def disconnect(self) -> "MarketFeedClient":
        """Send the disconnect request, then close."""
        return self._shutdown(graceful=True)

    def _shutdown(self, graceful: bool) -> "MarketFeedClient":
        with self._lock:
            if not self._started:
                return self
            self._started = False
            connection = self._connection
            self._connection = None

        if connection is not None:
            if graceful:
                connection.disconnect()
            else:
                connection.stop()
        self._registry.unregister(self)
        self._emit(FeedEvent.CLOSE, CloseInfo(code=None, reason="client stopped", initiated_locally=True))
        logger.info(f"[{self._name}] Client {'disconnected' if graceful else 'stopped'}")
        return self

    @property
    def connected(self) -> bool:
        """True while started and the socket is open."""
        connection = self._connection
        if not self._started or connection is None:
            return False
        return connection.is_open

    def get_health(self) -> Optional[ConnectionHealth]:
        connection = self._connection
        return connection.get_health() if connection is not None else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_one(self, segment: SegmentLike, security_id: Union[str, int]) -> "MarketFeedClient":
        self._bus.sub(normalize_instruments([(segment, security_id)]))
        return self

    def subscribe_many(self, instruments: Iterable[Any]) -> "MarketFeedClient":
        """Queue a subscribe for each instrument (mappings, Instrument or pairs)."""
        self._bus.sub(normalize_instruments(instruments))
        return self

    def unsubscribe_one(self, segment: SegmentLike, security_id: Union[str, int]) -> "MarketFeedClient":
        self._bus.unsub(normalize_instruments([(segment, security_id)]))
        return self

    def unsubscribe_many(self, instruments: Iterable[Any]) -> "MarketFeedClient":
        self._bus.unsub(normalize_instruments(instruments))
        return self

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @staticmethod
    def _event(event: Union[FeedEvent, str]) -> FeedEvent:
        try:
            return FeedEvent(event)
        except ValueError as e:
            raise ConfigurationError(f"Unknown event: {event!r}", field="event", value=event) from e

    def on(self, event: Union[FeedEvent, str], callback: Callback) -> "MarketFeedClient":
        """Register ``callback`` for ``event``; callbacks run in registration order."""
        kind = self._event(event)
        with self._lock:
            self._callbacks[kind] = self._callbacks[kind] + (callback,)
        return self

    def off(self, event: Union[FeedEvent, str], callback: Callback) -> "MarketFeedClient":
        """Remove the first registration of ``callback`` for ``event``, if any."""
        kind = self._event(event)
        with self._lock:
            current = list(self._callbacks[kind])
            if callback in current:
                current.remove(callback)
                self._callbacks[kind] = tuple(current)
        return self

    def _emit(self, event: FeedEvent, payload: Any = None) -> None:
        for callback in self._callbacks[event]:
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"[{self._name}] {event.value} callback error: {e}")

    def _handle_binary(self, data: bytes) -> None:
        tick = decoder.decode(data)
        if tick is not None:
            self._emit(FeedEvent.TICK, tick)

    def _handle_open(self) -> None:
        self._emit(FeedEvent.OPEN)

    def _handle_close(self, info: CloseInfo) -> None:
        self._emit(FeedEvent.CLOSE, info)

    def _handle_error(self, error: Exception) -> None:
        self._emit(FeedEvent.ERROR, error)
