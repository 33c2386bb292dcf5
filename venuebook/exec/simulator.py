"""Order execution simulator.

Walks an immutable book snapshot to estimate how a hypothetical order would
fill. Apart from the time-to-fill jitter (drawn from an injectable
``random.Random``) and the generated order id, results are deterministic.
"""

from __future__ import annotations

import math
import random
import uuid
from enum import Enum
from typing import Optional, Sequence, Tuple

from ..core.errors import NoLiquidityError, SimulationInputError
from ..core.types import (
    MarketDataSnapshot,
    OrderRequest,
    OrderSide,
    OrderTiming,
    OrderType,
    PriceLevel,
    SimulationResult,
)
from ..core.utils import clamp, safe_div
from ..io import metrics

IMPACT_DEPTH = 10
SECONDS_PER_LEVEL = 2.0
REFERENCE_VOLUME = 1_000_000.0
MARKET_LATENCY_S = (0.05, 0.20)
LIMIT_JITTER = (0.8, 1.2)
MIN_LIMIT_FILL_S = 1.0
MAX_LIMIT_FILL_S = 300.0


class LimitEligibility(str, Enum):
    """Which opposing levels count toward a limit order's available size.

    PASSIVE: levels at or beyond the limit on the far side of it (a buy
    counts asks >= limit, a sell counts bids <= limit). This is the default.

    MARKETABLE: levels the order would cross (a buy counts asks <= limit,
    a sell counts bids >= limit).
    """

    PASSIVE = "passive"
    MARKETABLE = "marketable"


def is_eligible(level_price: float, limit: float, side: OrderSide, eligibility: LimitEligibility) -> bool:
    if eligibility == LimitEligibility.MARKETABLE:
        return level_price <= limit if side == OrderSide.BUY else level_price >= limit
    return level_price >= limit if side == OrderSide.BUY else level_price <= limit


def _validate(request: OrderRequest) -> None:
    if request.quantity is None or not math.isfinite(request.quantity) or request.quantity <= 0:
        raise SimulationInputError(f"quantity must be a positive number, got {request.quantity!r}")
    if request.order_type == OrderType.LIMIT:
        if request.price is None:
            raise SimulationInputError("limit order requires a price")
        if not math.isfinite(request.price) or request.price <= 0:
            raise SimulationInputError(f"limit price must be a positive number, got {request.price!r}")


def walk_limit(
    levels: Sequence[PriceLevel],
    limit: float,
    quantity: float,
    side: OrderSide,
    eligibility: LimitEligibility = LimitEligibility.PASSIVE,
) -> Tuple[float, int]:
    """Return ``(fill_percentage, position)`` for a limit order."""
    position = 0
    available = 0.0
    for i, level in enumerate(levels):
        if not is_eligible(level.price, limit, side, eligibility):
            continue
        position = i
        available += level.size
        if available >= quantity:
            return 100.0, position
    return min(100.0, available / quantity * 100), position


def walk_market(levels: Sequence[PriceLevel], quantity: float) -> Tuple[float, float, int]:
    """Consume levels greedily; return ``(fill_percentage, vwap, levels_touched)``."""
    remaining = quantity
    total_cost = 0.0
    touched = 0
    for level in levels:
        if remaining <= 0:
            break
        take = min(level.size, remaining)
        total_cost += take * level.price
        remaining -= take
        touched += 1
    filled = quantity - remaining
    vwap = total_cost / filled if filled > 0 else 0.0
    return min(100.0, filled / quantity * 100), vwap, touched


def market_impact(levels: Sequence[PriceLevel], quantity: float, execution_price: float) -> float:
    book_value = sum(level.price * level.size for level in levels[:IMPACT_DEPTH])
    return safe_div(quantity * execution_price, book_value, 0.0) * 100


def limit_time_to_fill(
    position: int,
    volume_24h: float,
    slippage: float,
    delay_s: float,
    rng: random.Random,
) -> float:
    estimate = position * SECONDS_PER_LEVEL
    estimate *= max(0.1, REFERENCE_VOLUME / (volume_24h or REFERENCE_VOLUME))  # thin volume waits longer
    estimate /= max(0.5, slippage / 10)  # volatile books fill faster
    estimate *= rng.uniform(*LIMIT_JITTER)
    estimate += delay_s
    return clamp(estimate, MIN_LIMIT_FILL_S, MAX_LIMIT_FILL_S)


def new_order_id() -> str:
    return f"sim_{uuid.uuid4().hex}"


def simulate(
    snapshot: MarketDataSnapshot,
    request: OrderRequest,
    rng: Optional[random.Random] = None,
    eligibility: LimitEligibility = LimitEligibility.PASSIVE,
) -> SimulationResult:
    """Estimate fill percentage, slippage, market impact and time to fill.

    Raises ``SimulationInputError`` for an invalid request and
    ``NoLiquidityError`` when the opposing side of the book is empty.
    """
    _validate(request)
    rng = rng or random.Random()
    book = snapshot.orderbook
    side = OrderSide(request.side)
    levels = book.levels(side)
    if not levels:
        raise NoLiquidityError(
            f"no {'asks' if side == OrderSide.BUY else 'bids'} on {snapshot.venue.value} {snapshot.symbol}"
        )
    mid = book.mid()
    if mid is None:
        mid = levels[0].price

    quantity = request.quantity
    if request.order_type == OrderType.MARKET:
        execution_price = levels[0].price
        fill, vwap, position = walk_market(levels, quantity)
        slippage = abs(vwap - mid) / mid * 100
        time_to_fill = rng.uniform(*MARKET_LATENCY_S)
    else:
        execution_price = float(request.price)
        fill, position = walk_limit(levels, execution_price, quantity, side, eligibility)
        slippage = abs(execution_price - mid) / mid * 100
        time_to_fill = limit_time_to_fill(
            position,
            snapshot.ticker.volume_24h,
            slippage,
            OrderTiming(request.timing).delay_seconds,
            rng,
        )

    metrics.inc_simulation(OrderType(request.order_type).value)
    return SimulationResult(
        order_id=new_order_id(),
        estimated_fill_percentage=clamp(fill, 0.0, 100.0),
        market_impact_percent=market_impact(levels, quantity, execution_price),
        slippage_percent=slippage,
        time_to_fill_seconds=time_to_fill,
        position=position,
    )
