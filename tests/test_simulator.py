import random

import pytest

from venuebook.core.errors import NoLiquidityError, SimulationInputError
from venuebook.core.types import (
    MarketDataSnapshot,
    OrderBookSnapshot,
    OrderRequest,
    OrderSide,
    OrderTiming,
    OrderType,
    PriceLevel,
    Ticker,
    Venue,
)
from venuebook.exec.simulator import (
    LimitEligibility,
    limit_time_to_fill,
    market_impact,
    simulate,
    walk_limit,
)


def _snapshot(bids, asks, volume=1_000_000.0):
    book = OrderBookSnapshot.from_levels(
        [PriceLevel(p, s) for p, s in bids], [PriceLevel(p, s) for p, s in asks], 1
    )
    ticker = Ticker(symbol="BTC-USDT", last_price=101.0, volume_24h=volume)
    return MarketDataSnapshot("BTC-USDT", Venue.OKX, book, ticker, 1)


BOOK = _snapshot(bids=[(100, 2), (99, 3)], asks=[(101, 1), (102, 4)])


def _order(order_type, side, quantity, price=None, timing=OrderTiming.IMMEDIATE):
    return OrderRequest(Venue.OKX, "BTC-USDT", order_type, side, quantity, price, timing)


def test_market_buy_walks_two_levels():
    res = simulate(BOOK, _order(OrderType.MARKET, OrderSide.BUY, 3), rng=random.Random(1))
    vwap = (1 * 101 + 2 * 102) / 3
    assert res.estimated_fill_percentage == 100
    assert res.position == 2
    assert res.slippage_percent == pytest.approx(abs(vwap - 100.5) / 100.5 * 100)
    assert res.slippage_percent == pytest.approx(1.16, abs=0.01)
    assert res.market_impact_percent == pytest.approx(3 * 101 / (101 * 1 + 102 * 4) * 100)
    assert 0.05 <= res.time_to_fill_seconds <= 0.20


def test_market_order_filled_by_top_level_touches_one_level():
    res = simulate(BOOK, _order(OrderType.MARKET, OrderSide.SELL, 1.5))
    assert res.estimated_fill_percentage == 100
    assert res.position == 1
    assert res.slippage_percent == pytest.approx(0.5 / 100.5 * 100)


def test_market_order_larger_than_book_is_partial():
    res = simulate(BOOK, _order(OrderType.MARKET, OrderSide.BUY, 10))
    assert res.estimated_fill_percentage == pytest.approx(50.0)
    assert res.position == 2


def test_limit_sell_counts_bids_at_or_below_limit():
    res = simulate(BOOK, _order(OrderType.LIMIT, OrderSide.SELL, 5, price=99.5))
    assert res.estimated_fill_percentage == pytest.approx(60.0)
    assert res.position == 1
    assert res.slippage_percent == pytest.approx(1 / 100.5 * 100)


def test_limit_marketable_eligibility_counts_crossed_levels():
    res = simulate(
        BOOK,
        _order(OrderType.LIMIT, OrderSide.SELL, 5, price=99.5),
        eligibility=LimitEligibility.MARKETABLE,
    )
    assert res.estimated_fill_percentage == pytest.approx(40.0)
    assert res.position == 0


def test_walk_limit_buy_both_conventions():
    asks = BOOK.orderbook.asks
    assert walk_limit(asks, 101.5, 4, OrderSide.BUY) == (100.0, 1)
    fill, pos = walk_limit(asks, 101.5, 4, OrderSide.BUY, LimitEligibility.MARKETABLE)
    assert fill == pytest.approx(25.0)
    assert pos == 0


def test_limit_with_no_eligible_level_reports_zero_fill():
    res = simulate(BOOK, _order(OrderType.LIMIT, OrderSide.BUY, 1, price=500))
    assert res.estimated_fill_percentage == 0
    assert res.position == 0


def test_limit_time_to_fill_bounds_and_delay():
    rng = random.Random(7)
    for timing in OrderTiming:
        res = simulate(BOOK, _order(OrderType.LIMIT, OrderSide.BUY, 5, price=101, timing=timing), rng=rng)
        assert 1.0 <= res.time_to_fill_seconds <= 300.0
        assert res.time_to_fill_seconds >= min(300.0, timing.delay_seconds)


def test_limit_time_to_fill_formula_without_jitter():
    class NoJitter(random.Random):
        def uniform(self, a, b):
            return 1.0

    # position 3, half the reference volume, low slippage
    t = limit_time_to_fill(3, 500_000.0, 1.0, 5.0, NoJitter())
    assert t == pytest.approx(3 * 2 * 2 / 0.5 + 5)
    assert limit_time_to_fill(0, 1.0, 0.0, 0.0, NoJitter()) == 1.0
    assert limit_time_to_fill(100, 1.0, 0.0, 30.0, NoJitter()) == 300.0


def test_zero_volume_falls_back_to_reference_volume():
    class NoJitter(random.Random):
        def uniform(self, a, b):
            return 1.0

    assert limit_time_to_fill(2, 0.0, 0.0, 0.0, NoJitter()) == pytest.approx(2 * 2 / 0.5)


def test_simulate_is_idempotent_apart_from_jitter_and_id():
    order = _order(OrderType.LIMIT, OrderSide.BUY, 3, price=101.5)
    a = simulate(BOOK, order)
    b = simulate(BOOK, order)
    assert a.order_id != b.order_id
    assert a.estimated_fill_percentage == b.estimated_fill_percentage
    assert a.market_impact_percent == b.market_impact_percent
    assert a.position == b.position


def test_simulate_does_not_mutate_snapshot():
    before = BOOK.orderbook
    simulate(BOOK, _order(OrderType.MARKET, OrderSide.BUY, 4))
    assert BOOK.orderbook is before
    assert BOOK.orderbook.asks == (PriceLevel(101, 1), PriceLevel(102, 4))


@pytest.mark.parametrize("quantity", [0, -1, float("nan"), float("inf")])
def test_non_positive_or_non_finite_quantity_rejected(quantity):
    with pytest.raises(SimulationInputError):
        simulate(BOOK, _order(OrderType.MARKET, OrderSide.BUY, quantity))


def test_limit_without_price_rejected():
    with pytest.raises(SimulationInputError):
        simulate(BOOK, _order(OrderType.LIMIT, OrderSide.BUY, 1))


@pytest.mark.parametrize("price", [0, float("nan"), float("-inf")])
def test_bad_limit_price_rejected(price):
    with pytest.raises(SimulationInputError):
        simulate(BOOK, _order(OrderType.LIMIT, OrderSide.BUY, 1, price))


def test_empty_opposing_side_raises_no_liquidity():
    snap = _snapshot(bids=[(100, 2)], asks=[])
    with pytest.raises(NoLiquidityError):
        simulate(snap, _order(OrderType.MARKET, OrderSide.BUY, 1))
    # the bid side is still usable; mid falls back to the best bid
    res = simulate(snap, _order(OrderType.MARKET, OrderSide.SELL, 1))
    assert res.estimated_fill_percentage == 100
    assert res.slippage_percent == 0


def test_market_impact_zero_book_value():
    assert market_impact((), 1, 100) == 0.0


def test_fill_percentage_in_range_for_random_books():
    rng = random.Random(42)
    for _ in range(200):
        bids = [(100 - i, rng.uniform(0.01, 5)) for i in range(rng.randint(1, 8))]
        asks = [(101 + i, rng.uniform(0.01, 5)) for i in range(rng.randint(1, 8))]
        snap = _snapshot(bids, asks, volume=rng.uniform(0, 2e6))
        side = rng.choice(list(OrderSide))
        order_type = rng.choice(list(OrderType))
        price = rng.uniform(95, 106) if order_type == OrderType.LIMIT else None
        res = simulate(snap, _order(order_type, side, rng.uniform(0.01, 30), price), rng=rng)
        assert 0 <= res.estimated_fill_percentage <= 100
