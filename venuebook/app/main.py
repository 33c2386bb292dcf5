"""App bootstrap for live or dry-run modes."""

from __future__ import annotations

import logging
import random
from typing import Iterable, Optional

from ..core.config import Settings
from ..core.types import Venue
from ..state.hub import SubscriptionHub
from ..venue.mock import MockConnection, MockConnector, random_walk_frames
from ..venue.registry import codec_for
from .aggregator import DEFAULT_SYMBOL, DEFAULT_VENUES, MarketDataAggregator


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def dry_run_connector(
    settings: Settings,
    venues: Iterable[Venue],
    symbol: str,
    steps: int = 600,
    interval_s: float = 0.1,
) -> MockConnector:
    """Connector replaying a synthetic random-walk book for each venue."""
    rng = random.Random(settings.seed)
    by_url = {}
    for venue in venues:
        codec = codec_for(venue, settings)
        native = codec.native_symbol(symbol)
        frames = random_walk_frames(venue, native, steps=steps, rng=rng)
        by_url[codec.url] = [MockConnection(frames, hold_open=True, interval_s=interval_s, label=venue.value)]
    return MockConnector(by_url=by_url)


def build_environment(
    settings: Optional[Settings] = None,
    venue: Venue = Venue.OKX,
    symbol: str = DEFAULT_SYMBOL,
    venues: Iterable[Venue] = DEFAULT_VENUES,
    dry_run: bool = False,
) -> tuple[SubscriptionHub, MarketDataAggregator]:
    settings = settings or Settings()
    venues = list(venues)
    connector = dry_run_connector(settings, venues, symbol) if dry_run else None
    hub = SubscriptionHub(settings=settings, connector=connector)
    agg = MarketDataAggregator(hub, venues=venues, venue=venue, symbol=symbol)
    return hub, agg
