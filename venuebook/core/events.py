"""Event structures emitted by venue codecs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from .types import OrderBookSnapshot


@dataclass(frozen=True)
class BookUpdate:
    book: OrderBookSnapshot


@dataclass(frozen=True)
class TickerUpdate:
    """Ticker fields carried by one push.

    Venues may send partial tickers, so only the fields present on the wire
    appear in ``values`` (keyed by ``Ticker`` attribute name).
    """

    values: Dict[str, float] = field(default_factory=dict)
    ts: Optional[int] = None  # epoch ms
