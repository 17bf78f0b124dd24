"""
Reconnecting WebSocket connection for the market feed.

Handles the feed socket lifecycle including:
- A private asyncio event loop on one daemon thread per connection
- Exponential backoff reconnection with jitter, and a fixed cool-off after 429s
- Replaying the full subscription set on every new session
- A periodic flush that turns queued commands into chunked wire requests
- Graceful (disconnect request) and hard (plain close) shutdown
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Optional

import aiohttp
import orjson

from dhanfeed.live.backoff import ReconnectBackoff
from dhanfeed.live.cmd_bus import CommandBus
from dhanfeed.live.config import (
    DISCONNECT_REQUEST_CODE,
    USER_AGENT,
    ConnectionConfig,
    FeedMode,
    sanitize_url,
)
from dhanfeed.live.errors import ConnectionError, RateLimitError
from dhanfeed.live.sub_state import SubscriptionState
from dhanfeed.live.types import (
    CloseInfo,
    CommandOp,
    ConnectionHealth,
    ConnectionMetrics,
    ConnectionState,
    Instrument,
    SessionOutcome,
)

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = int(aiohttp.WSCloseCode.OK)


def chunked(items: list[Instrument], size: int) -> Iterator[list[Instrument]]:
    """Split ``items`` into consecutive lists of at most ``size``."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _unique(instruments: Iterable[Instrument]) -> list[Instrument]:
    seen: dict[str, Instrument] = {}
    for i in instruments:
        seen.setdefault(i.key, i)
    return list(seen.values())


def _is_rate_limited_handshake(exc: BaseException) -> bool:
    """True if the upgrade was refused with HTTP 429."""
    if isinstance(exc, aiohttp.WSServerHandshakeError) and exc.status == 429:
        return True
    return "429" in str(exc)


class FeedConnection:
    """
    Owns one live feed session at a time and keeps it alive until stopped.

    The connection never decodes frames; each binary payload is handed to
    ``on_binary`` on the connection's loop thread, in arrival order.

    Usage:
        conn = FeedConnection(
            url=build_feed_url(settings),
            mode=FeedMode.QUOTE,
            bus=bus,
            state=state,
            on_binary=handle_frame,
        )
        conn.start()
        # ... later ...
        conn.stop()
    """

    def __init__(
        self,
        url: str,
        mode: FeedMode,
        bus: CommandBus,
        state: SubscriptionState,
        on_binary: Callable[[bytes], None],
        config: Optional[ConnectionConfig] = None,
        on_open: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[CloseInfo], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
        backoff: Optional[ReconnectBackoff] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "feed",
    ) -> None:
        """
        Initialize the connection.

        Args:
            url: Authenticated feed URL
            mode: Feed mode; selects the subscribe/unsubscribe request codes
            bus: Command bus drained by the periodic flush
            state: Subscription state shared with the owner
            on_binary: Callback for every binary frame
            config: Connection tuning
            on_open: Optional callback when a session opens
            on_close: Optional callback when the server closes a session
            on_error: Optional callback for transport errors
            session_factory: Builds the aiohttp session (on the loop thread)
            backoff: Reconnect backoff; built from config when omitted
            clock: Monotonic clock used for the cool-off deadline
            name: Name for logging purposes
        """
        self._url = url
        self._mode = mode
        self._bus = bus
        self._state_tracker = state
        self._on_binary = on_binary
        self._config = config or ConnectionConfig()
        self._on_open = on_open
        self._on_close = on_close
        self._on_error = on_error
        self._session_factory = session_factory or self._default_session
        self._backoff = backoff or ReconnectBackoff(
            base_s=self._config.base_backoff_s,
            cap_s=self._config.max_backoff_s,
            jitter=self._config.backoff_jitter,
        )
        self._clock = clock
        self._name = name

        # State
        self._state = ConnectionState.DISCONNECTED
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._cool_off_until: Optional[float] = None

        # Worker thread and its loop
        self._lifecycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopping = False
        self._stop_event = asyncio.Event()

        # Metrics
        self._metrics = ConnectionMetrics()
        self._connected_at: Optional[datetime] = None
        self._last_message_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def mode(self) -> FeedMode:
        return self._mode

    @property
    def metrics(self) -> ConnectionMetrics:
        """Connection metrics."""
        return self._metrics

    @property
    def stopping(self) -> bool:
        return self._stopping

    @property
    def is_open(self) -> bool:
        """True while the current session's socket is open."""
        ws = self._ws
        return ws is not None and not ws.closed

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")

    def _default_session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=self._config.connect_timeout_s)
        return aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": USER_AGENT})

    # ------------------------------------------------------------------
    # Thread lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "FeedConnection":
        """Start the worker thread; calling again is a no-op."""
        with self._lifecycle_lock:
            if self._thread is not None:
                return self
            self._thread = threading.Thread(
                target=self._run_event_loop,
                name=f"{self._name}-loop",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"[{self._name}] Starting feed connection to {sanitize_url(self._url)}")
        return self

    def _run_event_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            loop.run_until_complete(self._run())
        except Exception as e:
            logger.error(f"[{self._name}] Event loop stopped with error: {e}")
        finally:
            self._loop = None
            loop.close()
            self._set_state(ConnectionState.CLOSED)

    async def _run(self) -> None:
        self._session = self._session_factory()
        try:
            await self._reconnect_loop()
        finally:
            if self._session is not None and not self._session.closed:
                await self._session.close()
            self._session = None

    def stop(self, timeout: Optional[float] = None) -> None:
        """Close the socket without notifying the server; never reconnects after."""
        self._request_stop(send_disconnect=False, timeout=timeout)

    def disconnect(self, timeout: Optional[float] = None) -> None:
        """Ask the server to end the feed, then close; never reconnects after."""
        self._request_stop(send_disconnect=True, timeout=timeout)

    def _request_stop(self, send_disconnect: bool, timeout: Optional[float]) -> None:
        timeout = self._config.stop_timeout_s if timeout is None else timeout
        with self._lifecycle_lock:
            if self._stopping:
                return
            self._stopping = True

        logger.info(f"[{self._name}] {'Disconnecting' if send_disconnect else 'Stopping'} feed")
        on_loop_thread = threading.current_thread() is self._thread

        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                future = asyncio.run_coroutine_threadsafe(self._shutdown(send_disconnect), loop)
            except RuntimeError as e:
                logger.debug(f"[{self._name}] Loop closed before shutdown: {e}")
            else:
                if not on_loop_thread:
                    try:
                        future.result(timeout)
                    except Exception as e:
                        logger.warning(f"[{self._name}] Shutdown did not finish cleanly: {e}")

        thread = self._thread
        if thread is not None and not on_loop_thread:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"[{self._name}] Worker thread still running after {timeout}s")

    async def _shutdown(self, send_disconnect: bool) -> None:
        self._stopping = True
        self._stop_event.set()
        self._set_state(ConnectionState.CLOSING)
        ws = self._ws
        if ws is None or ws.closed:
            return
        if send_disconnect:
            try:
                await ws.send_str(orjson.dumps({"RequestCode": DISCONNECT_REQUEST_CODE}).decode())
            except Exception as e:
                logger.debug(f"[{self._name}] Disconnect request not sent: {e}")
        await ws.close()

    # ------------------------------------------------------------------
    # Reconnect loop
    # ------------------------------------------------------------------

    async def _reconnect_loop(self) -> None:
        """Run sessions until stopped, waiting out cool-offs and backoffs in between."""
        while not self._stopping:
            await self._wait_cooloff()
            if self._stopping:
                break

            outcome = await self._run_session()
            if self._stopping:
                break

            delay = self._after_session(outcome)
            if delay > 0:
                self._set_state(ConnectionState.RECONNECTING)
                await self._sleep(delay)

        self._set_state(ConnectionState.CLOSED)
        logger.info(f"[{self._name}] Reconnect loop finished")

    async def _wait_cooloff(self) -> None:
        if self._cool_off_until is None:
            return
        remaining = self._cool_off_until - self._clock()
        if remaining > 0:
            self._set_state(ConnectionState.COOLING_OFF)
            await self._sleep(remaining)
        self._cool_off_until = None

    async def _sleep(self, delay: float) -> None:
        """Sleep up to ``delay`` seconds, waking early on stop."""
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)

    def _after_session(self, outcome: SessionOutcome) -> float:
        """Apply the session outcome to backoff and cool-off; return the sleep before retrying."""
        if outcome == SessionOutcome.RATE_LIMITED:
            cool_off = self._config.cool_off_s
            self._cool_off_until = self._clock() + cool_off
            self._metrics.rate_limited += 1
            logger.warning(f"[{self._name}] Rate limited (429), cooling off for {cool_off:.0f}s")
            self._notify_error(
                RateLimitError("Feed session rate limited", cool_off_s=cool_off, component=self._name)
            )
            return 0.0

        if outcome == SessionOutcome.FAILED:
            delay = self._backoff.next_delay()
            self._metrics.reconnections += 1
            logger.warning(f"[{self._name}] Session failed, reconnecting in {delay:.2f}s")
            return delay

        self._backoff.reset()
        return 0.0

    def cool_off_remaining(self) -> float:
        if self._cool_off_until is None:
            return 0.0
        return max(0.0, self._cool_off_until - self._clock())

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _run_session(self) -> SessionOutcome:
        """Open one socket, serve it until it closes, and classify how it ended."""
        assert self._session is not None
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"[{self._name}] Connecting to {sanitize_url(self._url)}")
        try:
            ws = await self._session.ws_connect(self._url, heartbeat=self._config.heartbeat_s)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_error(
                ConnectionError(f"Connect failed: {e}", url=sanitize_url(self._url), component=self._name)
            )
            if _is_rate_limited_handshake(e):
                return SessionOutcome.RATE_LIMITED
            return SessionOutcome.FAILED

        if self._stopping:
            await ws.close()
            return SessionOutcome.CLEAN

        self._ws = ws
        flush_task: Optional[asyncio.Task[None]] = None
        try:
            self._mark_open()
            await self._replay_subscriptions(ws)
            flush_task = asyncio.create_task(self._flush_loop(ws), name=f"{self._name}_flush")
            return await self._receive_until_closed(ws)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_error(e)
            return SessionOutcome.FAILED
        finally:
            if flush_task is not None:
                flush_task.cancel()
                with suppress(asyncio.CancelledError):
                    await flush_task
            self._ws = None
            self._connected_at = None
            if not ws.closed:
                await ws.close()

    def _mark_open(self) -> None:
        self._connected_at = datetime.now(timezone.utc)
        self._metrics.sessions_opened += 1
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"[{self._name}] Connected ({self._mode.value} mode)")
        self._safe_call("open", self._on_open)

    async def _receive_until_closed(self, ws: aiohttp.ClientWebSocketResponse) -> SessionOutcome:
        while True:
            msg = await ws.receive()

            if msg.type == aiohttp.WSMsgType.BINARY:
                self._last_message_at = datetime.now(timezone.utc)
                self._metrics.frames_received += 1
                self._metrics.bytes_received += len(msg.data)
                self._dispatch_binary(msg.data)

            elif msg.type == aiohttp.WSMsgType.TEXT:
                logger.debug(f"[{self._name}] Ignoring text frame: {msg.data[:200]}")

            elif msg.type == aiohttp.WSMsgType.CLOSE:
                return self._classify_close(msg.data, msg.extra)

            elif msg.type in (aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                return self._classify_close(ws.close_code, None)

            elif msg.type == aiohttp.WSMsgType.ERROR:
                exc = ws.exception() or msg.data
                self._record_error(
                    ConnectionError(f"WebSocket error: {exc}", close_code=ws.close_code, component=self._name)
                )
                return SessionOutcome.FAILED

    def _classify_close(self, code: Optional[int], reason: Optional[str]) -> SessionOutcome:
        info = CloseInfo(code=code, reason=reason or "", initiated_locally=self._stopping)
        if info.initiated_locally:
            return SessionOutcome.CLEAN

        logger.warning(f"[{self._name}] Closed by server: code={info.code} reason={info.reason!r}")
        self._safe_call("close", self._on_close, info)

        if info.is_rate_limited:
            return SessionOutcome.RATE_LIMITED
        if info.code == NORMAL_CLOSURE:
            return SessionOutcome.CLEAN
        return SessionOutcome.FAILED

    def _dispatch_binary(self, data: bytes) -> None:
        try:
            self._on_binary(data)
        except Exception as e:
            self._metrics.errors += 1
            logger.error(f"[{self._name}] Frame handler error: {e}")

    # ------------------------------------------------------------------
    # Outbound requests
    # ------------------------------------------------------------------

    async def _replay_subscriptions(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Resend the whole subscribed set; the server forgets it between sessions."""
        snapshot = self._state_tracker.snapshot()
        if not snapshot:
            return
        sent = await self._send_chunks(ws, self._mode.subscribe_code, snapshot)
        logger.info(f"[{self._name}] Resubscribed {sent}/{len(snapshot)} instruments")

    async def _flush_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            await asyncio.sleep(self._config.flush_interval_s)
            try:
                await self._drain_and_send(ws)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._metrics.errors += 1
                logger.error(f"[{self._name}] Flush error: {e}")

    async def _drain_and_send(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Send one flush cycle: subscribes first, then unsubscribes."""
        commands = self._bus.drain()
        if not commands:
            return

        subs = _unique(i for c in commands if c.op == CommandOp.SUB for i in c.payload)
        unsubs = _unique(i for c in commands if c.op == CommandOp.UNSUB for i in c.payload)

        to_sub = self._state_tracker.want_sub(subs)
        if to_sub:
            sent = await self._send_chunks(ws, self._mode.subscribe_code, to_sub)
            self._state_tracker.mark_subscribed(to_sub[:sent])
            logger.info(f"[{self._name}] Subscribed {sent} instruments")
            if sent < len(to_sub):
                self._bus.sub(to_sub[sent:])

        to_unsub = self._state_tracker.want_unsub(unsubs)
        if to_unsub:
            sent = await self._send_chunks(ws, self._mode.unsubscribe_code, to_unsub)
            self._state_tracker.mark_unsubscribed(to_unsub[:sent])
            logger.info(f"[{self._name}] Unsubscribed {sent} instruments")
            if sent < len(to_unsub):
                self._bus.unsub(to_unsub[sent:])

    async def _send_chunks(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        request_code: int,
        instruments: list[Instrument],
    ) -> int:
        """Send ``instruments`` in protocol-sized chunks; return how many went out."""
        sent = 0
        for chunk in chunked(instruments, self._config.max_instruments_per_message):
            payload = {
                "RequestCode": request_code,
                "InstrumentCount": len(chunk),
                "InstrumentList": [i.to_wire() for i in chunk],
            }
            if not await self._send_json(ws, payload):
                break
            sent += len(chunk)
        return sent

    async def _send_json(self, ws: aiohttp.ClientWebSocketResponse, payload: dict[str, Any]) -> bool:
        # Only the current, still-open socket may be written to
        if ws is not self._ws or ws.closed:
            return False
        try:
            await ws.send_str(orjson.dumps(payload).decode())
        except Exception as e:
            self._record_error(e)
            return False
        self._metrics.messages_sent += 1
        return True

    # ------------------------------------------------------------------
    # Errors and health
    # ------------------------------------------------------------------

    def _record_error(self, error: Exception) -> None:
        self._metrics.errors += 1
        self._last_error = str(error)
        logger.error(f"[{self._name}] {error}")
        self._notify_error(error)

    def _notify_error(self, error: Exception) -> None:
        self._safe_call("error", self._on_error, error)

    def _safe_call(self, label: str, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"[{self._name}] {label} callback failed: {e}")

    def get_health(self) -> ConnectionHealth:
        """Get current connection health snapshot."""
        return ConnectionHealth(
            state=self._state,
            url=sanitize_url(self._url),
            connected_since=self._connected_at,
            last_message_at=self._last_message_at,
            reconnect_count=self._metrics.reconnections,
            message_count=self._metrics.frames_received,
            error_count=self._metrics.errors,
            subscription_count=len(self._state_tracker),
            last_error=self._last_error,
            cool_off_remaining_s=self.cool_off_remaining(),
        )
