"""In-memory latest-value store; one snapshot per (venue, symbol), no history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..core.types import MarketDataSnapshot, Venue

Key = Tuple[Venue, str]


@dataclass
class Store:
    snapshots: Dict[Key, MarketDataSnapshot] = field(default_factory=dict)

    def upsert(self, snap: MarketDataSnapshot) -> None:
        self.snapshots[(snap.venue, snap.symbol)] = snap

    def get(self, venue: Venue, symbol: str) -> Optional[MarketDataSnapshot]:
        return self.snapshots.get((Venue(venue), symbol))

    def discard(self, venue: Venue, symbol: str) -> None:
        self.snapshots.pop((Venue(venue), symbol), None)
