"""Venue adapter: one streaming connection per (venue, symbol).

State machine::

    DISCONNECTED -> CONNECTING -> SUBSCRIBED <-> RECONNECTING
    any state -> DISCONNECTED (stop)

The connection runs inside a single asyncio task. Reconnect back-off is an
``asyncio.sleep`` in that task, so ``stop()`` cancels a pending retry
deterministically.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, AsyncContextManager, Callable, Optional

from ..core.errors import ProtocolParseError, VenueConnectionError
from ..core.events import BookUpdate, TickerUpdate
from ..core.types import ConnectionState, MarketDataSnapshot, Ticker
from ..core.utils import now_ms
from ..io import metrics
from .base import VenueCodec
from .ticker import merge_ticker, synthesize_ticker
from .ws_client import BaseWSClient

logger = logging.getLogger(__name__)

Connector = Callable[..., AsyncContextManager[Any]]
SnapshotCallback = Callable[[MarketDataSnapshot], None]
StateCallback = Callable[[ConnectionState], None]


class VenueAdapter:
    def __init__(
        self,
        codec: VenueCodec,
        symbol: str,
        on_snapshot: SnapshotCallback,
        on_state: Optional[StateCallback] = None,
        connector: Optional[Connector] = None,
        reconnect_delay: float = 5.0,
        connect_timeout: float = 10.0,
        max_reconnect_attempts: Optional[int] = None,
        heartbeat_interval: float = 20.0,
        rng: Optional[random.Random] = None,
    ):
        self.codec = codec
        self.venue = codec.venue
        self.symbol = symbol
        self.on_snapshot = on_snapshot
        self.on_state = on_state
        self.connector: Connector = connector or BaseWSClient
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.max_reconnect_attempts = max_reconnect_attempts
        self.heartbeat_interval = heartbeat_interval
        self.rng = rng or random.Random()
        self.state = ConnectionState.DISCONNECTED
        self.snapshot: Optional[MarketDataSnapshot] = None
        self._venue_ticker: Optional[Ticker] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def label(self) -> str:
        return f"{self.venue.value}:{self.symbol}"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the connection task on the running event loop."""
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"adapter-{self.label}")

    def stop(self) -> None:
        """Close the connection and cancel any pending retry; no reconnect follows."""
        self._stopping = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._set_state(ConnectionState.DISCONNECTED)

    async def aclose(self) -> None:
        self.stop()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        logger.info("%s: %s -> %s", self.label, self.state.value, state.value)
        self.state = state
        if self.on_state is not None:
            self.on_state(state)

    async def _run(self) -> None:
        failures = 0
        while not self._stopping:
            self._set_state(ConnectionState.CONNECTING)
            try:
                async with self.connector(
                    self.codec.url,
                    open_timeout=self.connect_timeout,
                    label=self.label,
                    venue=self.venue.value,
                ) as conn:
                    failures = 0
                    await self._session(conn)
                logger.warning("%s: stream ended", self.label)
            except VenueConnectionError as exc:
                logger.warning("%s: connection failed: %s", self.label, exc)
            except ProtocolParseError as exc:
                logger.error("%s: fatal protocol error, recycling connection: %s", self.label, exc)
            except Exception:
                logger.exception("%s: session failed unexpectedly, recycling connection", self.label)
            if self._stopping:
                break
            failures += 1
            if self.max_reconnect_attempts is not None and failures > self.max_reconnect_attempts:
                logger.error(
                    "%s: giving up after %d reconnect attempts", self.label, self.max_reconnect_attempts
                )
                break
            self._set_state(ConnectionState.RECONNECTING)
            metrics.inc_reconnect(self.venue.value)
            logger.info("%s: reconnecting in %.1fs", self.label, self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)
        self._set_state(ConnectionState.DISCONNECTED)

    async def _session(self, conn: Any) -> None:
        for payload in self.codec.subscribe_messages(self.symbol):
            await conn.send_json(payload)
        self._set_state(ConnectionState.SUBSCRIBED)
        heartbeat = None
        if self.codec.heartbeat_message() is not None and self.heartbeat_interval > 0:
            heartbeat = asyncio.create_task(self._heartbeat(conn))
        try:
            async for message in conn.messages():
                self.handle_message(message)
        finally:
            if heartbeat is not None:
                heartbeat.cancel()

    async def _heartbeat(self, conn: Any) -> None:
        payload = self.codec.heartbeat_message()
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await conn.send(payload)
            except VenueConnectionError:
                return

    def handle_message(self, message: Any) -> None:
        """Parse one decoded frame and publish the resulting snapshot.

        Malformed frames are logged and dropped. Fatal protocol errors
        propagate so the connection is recycled.
        """
        try:
            update = self.codec.parse(message)
        except ProtocolParseError as exc:
            if exc.fatal:
                raise
            logger.warning("%s: dropping malformed frame: %s", self.label, exc)
            metrics.inc_parse_error(self.venue.value)
            return
        except Exception:
            logger.exception("%s: dropping frame the codec could not handle", self.label)
            metrics.inc_parse_error(self.venue.value)
            return
        if isinstance(update, BookUpdate):
            metrics.inc_frame(self.venue.value, "book")
            self._publish_book(update)
        elif isinstance(update, TickerUpdate):
            metrics.inc_frame(self.venue.value, "ticker")
            self._publish_ticker(update)

    def _publish_book(self, update: BookUpdate) -> None:
        book = update.book
        if self._venue_ticker is not None:
            ticker = self._venue_ticker
        else:
            best_ask = book.best_ask()
            ticker = synthesize_ticker(self.symbol, best_ask if best_ask is not None else 0.0, self.rng)
        self._emit(MarketDataSnapshot(self.symbol, self.venue, book, ticker, now_ms()))

    def _publish_ticker(self, update: TickerUpdate) -> None:
        if not update.values:
            return
        self._venue_ticker = merge_ticker(self.symbol, self._venue_ticker, update.values)
        # A ticker alone is not a book; wait for the first book before publishing.
        if self.snapshot is not None:
            prev = self.snapshot
            self._emit(MarketDataSnapshot(prev.symbol, prev.venue, prev.orderbook, self._venue_ticker, now_ms()))

    def _emit(self, snapshot: MarketDataSnapshot) -> None:
        self.snapshot = snapshot
        self.on_snapshot(snapshot)
