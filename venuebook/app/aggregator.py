"""Multi-venue aggregator consumed by the presentation layer.

Keeps one feed per venue for the active symbol, tracks which venue is
selected and runs order simulations against that venue's latest snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..core.errors import SimulationInputError
from ..core.types import (
    ConnectionState,
    MarketDataSnapshot,
    OrderRequest,
    OrderSide,
    SimulationResult,
    Venue,
)
from ..exec.simulator import LimitEligibility, simulate
from ..state.hub import Subscription, SubscriptionHub
from ..venue.registry import codec_for

logger = logging.getLogger(__name__)

DEFAULT_VENUES = (Venue.OKX, Venue.BYBIT, Venue.DERIBIT)
DEFAULT_SYMBOL = "BTC-USDT"


@dataclass(frozen=True)
class FeedStatus:
    connected: bool
    state: ConnectionState
    error: Optional[str] = None


@dataclass(frozen=True)
class SimulatedOrderView:
    """What the book view highlights for the last simulated order."""

    side: OrderSide
    price: float
    quantity: float
    position: Optional[int]


@dataclass(frozen=True)
class VenueQuote:
    venue: Venue
    symbol: str
    best_bid: Optional[float]
    best_ask: Optional[float]
    spread: Optional[float]
    connected: bool


class _VenueFeed:
    def __init__(self, venue: Venue, symbol: str):
        self.venue = venue
        self.symbol = symbol
        self.snapshot: Optional[MarketDataSnapshot] = None
        self.connected = False
        self.state = ConnectionState.DISCONNECTED
        self.error: Optional[str] = None
        self.subscription: Optional[Subscription] = None
        self.timeout: Optional[asyncio.TimerHandle] = None

    def on_update(self, snap: MarketDataSnapshot) -> None:
        self.snapshot = snap
        self.connected = True
        self.error = None
        self._cancel_timeout()

    def on_state(self, state: ConnectionState) -> None:
        self.state = state
        if state != ConnectionState.SUBSCRIBED:
            self.connected = False

    def on_timeout(self) -> None:
        self.timeout = None
        if self.snapshot is None or not self.connected:
            self.error = f"Failed to connect to {self.venue.value} for {self.symbol}"
            logger.warning(self.error)

    def close(self) -> None:
        self._cancel_timeout()
        if self.subscription is not None:
            self.subscription.unsubscribe()
            self.subscription = None
        self.snapshot = None
        self.connected = False

    def _cancel_timeout(self) -> None:
        if self.timeout is not None:
            self.timeout.cancel()
            self.timeout = None

    @property
    def status(self) -> FeedStatus:
        return FeedStatus(connected=self.connected, state=self.state, error=self.error)


class MarketDataAggregator:
    def __init__(
        self,
        hub: SubscriptionHub,
        venues: Iterable[Venue] = DEFAULT_VENUES,
        venue: Venue = Venue.OKX,
        symbol: str = DEFAULT_SYMBOL,
        connect_timeout: Optional[float] = None,
        eligibility: LimitEligibility = LimitEligibility.PASSIVE,
        rng: Optional[random.Random] = None,
    ):
        self.hub = hub
        self.venues = [Venue(v) for v in venues]
        if Venue(venue) not in self.venues:
            raise ValueError(f"active venue {venue!r} is not among {self.venues}")
        self._venue = Venue(venue)
        self._symbol = symbol
        self.connect_timeout = (
            connect_timeout if connect_timeout is not None else hub.settings.connect_timeout_s
        )
        self.eligibility = eligibility
        self.rng = rng or hub.rng
        self.simulated_order: Optional[SimulatedOrderView] = None
        self._feeds: Dict[Venue, _VenueFeed] = {}

    @property
    def active_venue(self) -> Venue:
        return self._venue

    @property
    def active_symbol(self) -> str:
        return self._symbol

    def native_symbol(self, venue: Venue) -> str:
        return codec_for(venue, self.hub.settings).native_symbol(self._symbol)

    def start(self) -> None:
        """Subscribe every venue feed for the active symbol (needs a running loop)."""
        if self._feeds:
            return
        loop = asyncio.get_running_loop()
        for venue in self.venues:
            feed = _VenueFeed(venue, self.native_symbol(venue))
            feed.subscription = self.hub.subscribe(
                venue, feed.symbol, feed.on_update, on_state=feed.on_state
            )
            feed.state = self.hub.state(venue, feed.symbol)
            feed.timeout = loop.call_later(self.connect_timeout, feed.on_timeout)
            self._feeds[venue] = feed
        logger.info("aggregator: watching %s on %s", self._symbol, ", ".join(v.value for v in self.venues))

    def stop(self) -> None:
        for feed in self._feeds.values():
            feed.close()
        self._feeds = {}

    def set_venue(self, venue: Venue) -> None:
        venue = Venue(venue)
        if venue not in self.venues:
            raise ValueError(f"unknown venue {venue!r}")
        if venue != self._venue:
            self._venue = venue
            self.simulated_order = None

    def set_symbol(self, symbol: str) -> None:
        """Switch every feed to ``symbol``, discarding all state for the old one."""
        if symbol == self._symbol:
            return
        started = bool(self._feeds)
        self.stop()
        self._symbol = symbol
        self.simulated_order = None
        if started:
            self.start()

    def snapshot(self, venue: Optional[Venue] = None) -> Optional[MarketDataSnapshot]:
        feed = self._feeds.get(Venue(venue) if venue else self._venue)
        return feed.snapshot if feed is not None else None

    def status(self, venue: Optional[Venue] = None) -> FeedStatus:
        feed = self._feeds.get(Venue(venue) if venue else self._venue)
        if feed is None:
            return FeedStatus(connected=False, state=ConnectionState.DISCONNECTED)
        return feed.status

    def connection_status(self) -> Dict[Venue, bool]:
        return {venue: self.status(venue).connected for venue in self.venues}

    def simulate(self, request: OrderRequest) -> SimulationResult:
        """Simulate ``request`` against the active venue's latest snapshot."""
        snap = self.snapshot()
        if snap is None:
            raise SimulationInputError("No market data available for simulation")
        result = simulate(snap, request, rng=self.rng, eligibility=self.eligibility)
        price = request.price
        if price is None:
            price = snap.orderbook.levels(OrderSide(request.side))[0].price
        self.simulated_order = SimulatedOrderView(
            side=OrderSide(request.side),
            price=price,
            quantity=request.quantity,
            position=result.position,
        )
        return result

    def comparison(self) -> List[VenueQuote]:
        out: List[VenueQuote] = []
        for venue in self.venues:
            feed = self._feeds.get(venue)
            snap = feed.snapshot if feed is not None else None
            book = snap.orderbook if snap is not None else None
            out.append(
                VenueQuote(
                    venue=venue,
                    symbol=feed.symbol if feed is not None else self.native_symbol(venue),
                    best_bid=book.best_bid() if book else None,
                    best_ask=book.best_ask() if book else None,
                    spread=book.spread() if book else None,
                    connected=feed.connected if feed is not None else False,
                )
            )
        return out

    async def close(self) -> None:
        self.stop()
        await self.hub.close()
