"""Venue codec abstraction.

A codec knows one venue's wire protocol: where to connect, how to subscribe
and how to turn a decoded JSON frame into a canonical event. Codecs are pure
and hold no connection state, so each adapter owns an independent instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..core.errors import ProtocolParseError
from ..core.events import BookUpdate, TickerUpdate
from ..core.types import OrderBookSnapshot, PriceLevel, Venue
from ..core.utils import now_ms, to_float

ParsedFrame = Optional[Union[BookUpdate, TickerUpdate]]


class VenueCodec(ABC):
    venue: Venue

    def __init__(self, url: str):
        self.url = url

    @abstractmethod
    def native_symbol(self, symbol: str) -> str:
        """Map a canonical ``BASE-QUOTE`` symbol to the venue's instrument name."""

    @abstractmethod
    def subscribe_messages(self, symbol: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def parse(self, message: Any) -> ParsedFrame:
        """Decode one frame.

        Returns ``None`` for control frames (acks, pongs) that carry no data.
        Raises ``ProtocolParseError`` for malformed content.
        """

    def heartbeat_message(self) -> Optional[str]:
        """Application-level ping payload, if the venue expects one."""
        return None

    def _error(self, message: str, fatal: bool = False) -> ProtocolParseError:
        return ProtocolParseError(message, venue=self.venue.value, fatal=fatal)

    def _levels(self, raw: Any, side: str) -> List[PriceLevel]:
        if not isinstance(raw, (list, tuple)):
            raise self._error(f"{side} is not a list: {type(raw).__name__}")
        out: List[PriceLevel] = []
        for entry in raw:
            out.append(self._level(entry, side))
        return out

    def _level(self, entry: Any, side: str) -> PriceLevel:
        if isinstance(entry, dict):
            pair: Sequence[Any] = (entry.get("price"), entry.get("size"))
        elif isinstance(entry, (list, tuple)) and len(entry) >= 2:
            pair = entry
        else:
            raise self._error(f"bad {side} level: {entry!r}")
        try:
            return PriceLevel(to_float(pair[0]), to_float(pair[1]))
        except ValueError as exc:
            raise self._error(f"bad {side} level {entry!r}: {exc}") from exc

    def _book(self, bids: Iterable[PriceLevel], asks: Iterable[PriceLevel], ts: Any) -> BookUpdate:
        try:
            snap = OrderBookSnapshot.from_levels(bids, asks, self._timestamp(ts))
        except ValueError as exc:
            raise self._error(str(exc)) from exc
        return BookUpdate(snap)

    def _timestamp(self, ts: Any) -> int:
        """Venue timestamp in epoch ms, else local receive time."""
        if ts in (None, ""):
            return now_ms()
        try:
            return int(to_float(ts))
        except (ValueError, OverflowError) as exc:
            raise self._error(f"bad timestamp {ts!r}") from exc

    def _number(self, data: Dict[str, Any], key: str) -> Optional[float]:
        """Optional numeric field; missing or empty gives None."""
        raw = data.get(key)
        if raw in (None, ""):
            return None
        try:
            return to_float(raw)
        except ValueError as exc:
            raise self._error(f"bad {key} {raw!r}") from exc
