"""Entry point: stream one venue's book and optionally simulate an order."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from ..core.config import load_settings
from ..core.errors import SimulationError
from ..core.types import OrderRequest, OrderSide, OrderTiming, OrderType, Venue
from ..io.persistence import write_json
from .aggregator import DEFAULT_SYMBOL, MarketDataAggregator
from .main import build_environment, configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Stream venue order books and simulate an order.")
    p.add_argument("--venue", default=Venue.OKX.value, choices=[v.value for v in Venue])
    p.add_argument("--symbol", default=DEFAULT_SYMBOL, help="canonical BASE-QUOTE symbol")
    p.add_argument("--seconds", type=float, default=10.0, help="how long to stream")
    p.add_argument("--dry-run", action="store_true", help="synthetic books, no network")
    p.add_argument("--side", choices=[s.value for s in OrderSide])
    p.add_argument("--type", dest="order_type", default=OrderType.MARKET.value, choices=[t.value for t in OrderType])
    p.add_argument("--quantity", type=float)
    p.add_argument("--price", type=float)
    p.add_argument("--timing", default=OrderTiming.IMMEDIATE.value, choices=[t.value for t in OrderTiming])
    p.add_argument("--out", help="write the simulation result to this JSON file")
    p.add_argument("--log-level", default=None)
    return p.parse_args(argv)


def _print_top(agg: MarketDataAggregator) -> None:
    for quote in agg.comparison():
        state = "up" if quote.connected else agg.status(quote.venue).state.value
        print(f"{quote.venue.value:<8} {quote.symbol:<14} bid={quote.best_bid} ask={quote.best_ask} [{state}]")


async def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    venue = Venue(args.venue)
    _, agg = build_environment(settings, venue=venue, symbol=args.symbol, dry_run=args.dry_run)
    agg.start()
    try:
        elapsed = 0.0
        while elapsed < args.seconds:
            await asyncio.sleep(1.0)
            elapsed += 1.0
            _print_top(agg)
        if args.side and args.quantity:
            request = OrderRequest(
                venue=venue,
                symbol=agg.native_symbol(venue),
                order_type=OrderType(args.order_type),
                side=OrderSide(args.side),
                quantity=args.quantity,
                price=args.price,
                timing=OrderTiming(args.timing),
            )
            try:
                result = agg.simulate(request)
            except SimulationError as exc:
                logger.error("simulation failed: %s", exc)
                return 1
            print(result)
            if args.out:
                write_json(args.out, result)
    finally:
        await agg.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:  # pragma: no cover - manual run
    args = parse_args(argv)
    configure_logging(args.log_level or load_settings().log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
