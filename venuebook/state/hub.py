"""Subscription hub: shares one adapter per (venue, symbol) and fans out updates.

The registry is the only structure shared between adapters. Mutations hold
``_lock``; fan-out copies the subscriber list under the lock and calls the
callbacks outside it.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..core.config import Settings
from ..core.types import ConnectionState, MarketDataSnapshot, Venue
from ..venue.adapter import Connector, VenueAdapter
from ..venue.registry import codec_for
from .store import Key, Store

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[MarketDataSnapshot], None]
StateCallback = Callable[[ConnectionState], None]


class Subscription:
    """Handle returned by ``SubscriptionHub.subscribe``; call it to unsubscribe."""

    def __init__(
        self,
        hub: "SubscriptionHub",
        key: Key,
        callback: UpdateCallback,
        on_state: Optional[StateCallback] = None,
    ):
        self.hub = hub
        self.key = key
        self.callback = callback
        self.on_state = on_state
        self.active = True

    def unsubscribe(self) -> None:
        self.hub._remove(self)

    __call__ = unsubscribe

    def __repr__(self) -> str:
        venue, symbol = self.key
        return f"Subscription({venue.value}, {symbol}, active={self.active})"


@dataclass
class _Entry:
    adapter: VenueAdapter
    subscriptions: List[Subscription] = field(default_factory=list)


class SubscriptionHub:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        connector: Optional[Connector] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or Settings()
        self.connector = connector
        self.rng = rng or random.Random(self.settings.seed)
        self.store = Store()
        self._entries: Dict[Key, _Entry] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        venue: Venue,
        symbol: str,
        callback: UpdateCallback,
        on_state: Optional[StateCallback] = None,
    ) -> Subscription:
        """Register ``callback`` for updates on (venue, symbol).

        The first subscriber for a key starts its adapter, so this must be
        called with an event loop running.
        """
        key: Key = (Venue(venue), symbol)
        sub = Subscription(self, key, callback, on_state)
        with self._lock:
            entry = self._entries.get(key)
            created = entry is None
            if entry is None:
                entry = _Entry(adapter=self._make_adapter(key))
                self._entries[key] = entry
            entry.subscriptions.append(sub)
        if created:
            logger.info("hub: starting adapter for %s %s", key[0].value, symbol)
            try:
                entry.adapter.start()
            except RuntimeError:
                self._remove(sub)
                raise
        return sub

    def _make_adapter(self, key: Key) -> VenueAdapter:
        venue, symbol = key
        s = self.settings
        adapter = VenueAdapter(
            codec_for(venue, s),
            symbol,
            on_snapshot=lambda snap: self._dispatch(key, adapter, snap),
            on_state=lambda state: self._dispatch_state(key, adapter, state),
            connector=self.connector,
            reconnect_delay=s.reconnect_delay_s,
            connect_timeout=s.connect_timeout_s,
            max_reconnect_attempts=s.max_reconnect_attempts,
            heartbeat_interval=s.heartbeat_interval_s,
            rng=self.rng,
        )
        return adapter

    def _remove(self, sub: Subscription) -> None:
        adapter = None
        with self._lock:
            if not sub.active:
                return
            sub.active = False
            entry = self._entries.get(sub.key)
            if entry is None:
                return
            entry.subscriptions = [s for s in entry.subscriptions if s is not sub]
            if not entry.subscriptions:
                del self._entries[sub.key]
                self.store.discard(*sub.key)
                adapter = entry.adapter
        if adapter is not None:
            logger.info("hub: last subscriber left %s %s, stopping adapter", sub.key[0].value, sub.key[1])
            adapter.stop()

    def _subscribers(self, key: Key, adapter: VenueAdapter) -> List[Subscription]:
        # A stopped adapter may still be unwinding; never deliver its
        # updates to a newer entry registered under the same key.
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.adapter is not adapter:
                return []
            return list(entry.subscriptions)

    def _dispatch(self, key: Key, adapter: VenueAdapter, snap: MarketDataSnapshot) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.adapter is not adapter:
                return
            self.store.upsert(snap)
        for sub in self._subscribers(key, adapter):
            if not sub.active:
                continue
            try:
                sub.callback(snap)
            except Exception:
                logger.exception("hub: subscriber callback failed for %s %s", key[0].value, key[1])

    def _dispatch_state(self, key: Key, adapter: VenueAdapter, state: ConnectionState) -> None:
        for sub in self._subscribers(key, adapter):
            if not sub.active or sub.on_state is None:
                continue
            try:
                sub.on_state(state)
            except Exception:
                logger.exception("hub: state callback failed for %s %s", key[0].value, key[1])

    def latest(self, venue: Venue, symbol: str) -> Optional[MarketDataSnapshot]:
        return self.store.get(venue, symbol)

    def state(self, venue: Venue, symbol: str) -> ConnectionState:
        with self._lock:
            entry = self._entries.get((Venue(venue), symbol))
        return entry.adapter.state if entry is not None else ConnectionState.DISCONNECTED

    def adapter(self, venue: Venue, symbol: str) -> Optional[VenueAdapter]:
        with self._lock:
            entry = self._entries.get((Venue(venue), symbol))
        return entry.adapter if entry is not None else None

    def keys(self) -> List[Key]:
        with self._lock:
            return list(self._entries)

    async def close(self) -> None:
        """Drop every subscription and wait for all adapters to shut down."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            self.store.snapshots.clear()
        for entry in entries:
            for sub in entry.subscriptions:
                sub.active = False
        for entry in entries:
            await entry.adapter.aclose()
