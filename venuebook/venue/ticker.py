"""Placeholder ticker for venues whose ticker channel has not reported yet.

The 24h fields are random deviations around the last price, for display
only. The result is flagged ``synthetic``.
"""

from __future__ import annotations

import random
from dataclasses import replace
from typing import Dict, Optional

from ..core.types import Ticker
from ..core.utils import safe_div

MAX_DEVIATION = 0.05
MAX_VOLUME = 1_000_000.0


def synthesize_ticker(symbol: str, last_price: float, rng: Optional[random.Random] = None) -> Ticker:
    rng = rng or random.Random()
    change = (rng.random() - 0.5) * last_price * MAX_DEVIATION
    return Ticker(
        symbol=symbol,
        last_price=last_price,
        change_24h=change,
        change_percent_24h=safe_div(change, last_price, 0.0) * 100,
        volume_24h=rng.random() * MAX_VOLUME,
        high_24h=last_price * (1 + rng.random() * MAX_DEVIATION),
        low_24h=last_price * (1 - rng.random() * MAX_DEVIATION),
        synthetic=True,
    )


def merge_ticker(symbol: str, previous: Optional[Ticker], values: Dict[str, float]) -> Ticker:
    """Apply a (possibly partial) venue ticker push onto the previous one."""
    if previous is None or previous.synthetic:
        previous = Ticker(symbol=symbol, last_price=values.get("last_price", 0.0))
    return replace(previous, synthetic=False, **values)
