"""Core type definitions for the venue market-data model.

Books and tickers are immutable; every venue update produces a fresh
snapshot which replaces the previous one wholesale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class Venue(str, Enum):
    OKX = "OKX"
    BYBIT = "Bybit"
    DERIBIT = "Deribit"


class OrderSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class OrderType(str, Enum):
    MARKET = "Market"
    LIMIT = "Limit"


class OrderTiming(str, Enum):
    IMMEDIATE = "immediate"
    DELAY_5S = "5s"
    DELAY_10S = "10s"
    DELAY_30S = "30s"

    @property
    def delay_seconds(self) -> float:
        return _TIMING_DELAYS[self]


_TIMING_DELAYS: Dict[OrderTiming, float] = {
    OrderTiming.IMMEDIATE: 0.0,
    OrderTiming.DELAY_5S: 5.0,
    OrderTiming.DELAY_10S: 10.0,
    OrderTiming.DELAY_30S: 30.0,
}


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class PriceLevel:
    price: float
    size: float


@dataclass(frozen=True)
class DepthLevel:
    """Price level annotated with the running size total from the top of book."""

    price: float
    size: float
    total: float


@dataclass(frozen=True)
class OrderBookSnapshot:
    bids: Tuple[PriceLevel, ...]
    asks: Tuple[PriceLevel, ...]
    timestamp: int  # epoch ms

    @classmethod
    def from_levels(
        cls,
        bids: Iterable[PriceLevel],
        asks: Iterable[PriceLevel],
        timestamp: int,
    ) -> "OrderBookSnapshot":
        """Normalize raw levels into a canonical snapshot.

        Sides are sorted best-first whatever the wire order was, empty levels
        are dropped and a repeated price keeps its last size. Raises
        ``ValueError`` for a crossed book or a NaN or infinite level.
        """
        norm_bids = _normalize_side(bids, descending=True)
        norm_asks = _normalize_side(asks, descending=False)
        if norm_bids and norm_asks and norm_bids[0].price >= norm_asks[0].price:
            raise ValueError(
                f"crossed book: best bid {norm_bids[0].price} >= best ask {norm_asks[0].price}"
            )
        return cls(bids=norm_bids, asks=norm_asks, timestamp=int(timestamp))

    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    def mid(self) -> Optional[float]:
        if not self.bids or not self.asks:
            return None
        return (self.bids[0].price + self.asks[0].price) / 2

    def spread(self) -> Optional[float]:
        if not self.bids or not self.asks:
            return None
        return self.asks[0].price - self.bids[0].price

    def spread_percent(self) -> Optional[float]:
        spread = self.spread()
        if spread is None or self.bids[0].price == 0:
            return None
        return spread / self.bids[0].price * 100

    def levels(self, side: OrderSide) -> Tuple[PriceLevel, ...]:
        """Return the side an order of ``side`` executes against."""
        return self.asks if side == OrderSide.BUY else self.bids

    def cumulative(self, side: OrderSide, depth: int = 15) -> List[DepthLevel]:
        """Running totals for the book side an order of ``side`` rests on.

        ``OrderSide.BUY`` gives the bid ladder, ``OrderSide.SELL`` the asks.
        """
        own = self.bids if side == OrderSide.BUY else self.asks
        out: List[DepthLevel] = []
        total = 0.0
        for level in own[:depth]:
            total += level.size
            out.append(DepthLevel(level.price, level.size, total))
        return out


def _normalize_side(
    levels: Iterable[PriceLevel], descending: bool
) -> Tuple[PriceLevel, ...]:
    by_price: Dict[float, PriceLevel] = {}
    for level in levels:
        if not (math.isfinite(level.price) and math.isfinite(level.size)):
            raise ValueError(f"non-finite level: {level!r}")
        if level.size <= 0:
            by_price.pop(level.price, None)
            continue
        by_price[level.price] = level
    return tuple(sorted(by_price.values(), key=lambda lvl: lvl.price, reverse=descending))


@dataclass(frozen=True)
class Ticker:
    symbol: str
    last_price: float
    change_24h: float = 0.0
    change_percent_24h: float = 0.0
    volume_24h: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
    synthetic: bool = False  # placeholder values, not an exchange statistic


@dataclass(frozen=True)
class MarketDataSnapshot:
    symbol: str
    venue: Venue
    orderbook: OrderBookSnapshot
    ticker: Ticker
    last_update: int  # epoch ms, local receive time


@dataclass(frozen=True)
class OrderRequest:
    venue: Venue
    symbol: str
    order_type: OrderType
    side: OrderSide
    quantity: float
    price: Optional[float] = None  # required for LIMIT
    timing: OrderTiming = OrderTiming.IMMEDIATE


@dataclass(frozen=True)
class SimulationResult:
    order_id: str
    estimated_fill_percentage: float
    market_impact_percent: float
    slippage_percent: float
    time_to_fill_seconds: Optional[float] = None
    position: Optional[int] = None
