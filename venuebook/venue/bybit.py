"""Bybit v5 public (linear) WebSocket codec.

Book pushes::

    {"topic": "orderbook.1.BTCUSDT", "type": "snapshot", "ts": 1700000000000,
     "data": {"s": "BTCUSDT", "b": [["100.5", "2"]], "a": [["101", "1"]], "u": 1}}

Depth 1 is pushed as a snapshot every time. Ticker pushes after the first
are deltas carrying only the fields that changed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.config import DEFAULT_BYBIT_WS_URL
from ..core.events import TickerUpdate
from ..core.types import Venue
from .base import ParsedFrame, VenueCodec

logger = logging.getLogger(__name__)

_TICKER_FIELDS = (
    ("lastPrice", "last_price"),
    ("highPrice24h", "high_24h"),
    ("lowPrice24h", "low_24h"),
    ("volume24h", "volume_24h"),
)


class BybitCodec(VenueCodec):
    venue = Venue.BYBIT

    def __init__(self, url: str = DEFAULT_BYBIT_WS_URL, depth: int = 1):
        super().__init__(url)
        self.depth = depth

    def native_symbol(self, symbol: str) -> str:
        return symbol.replace("-", "").upper()

    def subscribe_messages(self, symbol: str) -> List[Dict[str, Any]]:
        return [
            {"op": "subscribe", "args": [f"orderbook.{self.depth}.{symbol}"]},
            {"op": "subscribe", "args": [f"tickers.{symbol}"]},
        ]

    def heartbeat_message(self) -> Optional[str]:
        return '{"op": "ping"}'

    def parse(self, message: Any) -> ParsedFrame:
        if not isinstance(message, dict):
            raise self._error(f"unexpected frame type {type(message).__name__}")
        if "op" in message:
            if message.get("success") is False:
                raise self._error(f"venue rejected {message.get('op')}: {message.get('ret_msg')}", fatal=True)
            logger.debug("Bybit control frame: %s", message.get("op"))
            return None
        topic = message.get("topic")
        data = message.get("data")
        if not isinstance(topic, str) or not isinstance(data, dict):
            raise self._error("missing topic or data object")
        if topic.startswith("orderbook."):
            bids = self._levels(data.get("b"), "bids")
            asks = self._levels(data.get("a"), "asks")
            return self._book(bids, asks, message.get("ts") or data.get("ts"))
        if topic.startswith("tickers."):
            return self._ticker(data, message.get("ts"))
        logger.debug("Bybit frame on unhandled topic %s", topic)
        return None

    def _ticker(self, data: Dict[str, Any], ts: Any) -> TickerUpdate:
        values: Dict[str, float] = {}
        for wire, attr in _TICKER_FIELDS:
            value = self._number(data, wire)
            if value is not None:
                values[attr] = value
        pct = self._number(data, "price24hPcnt")
        if pct is not None:
            values["change_percent_24h"] = pct * 100
        prev = self._number(data, "prevPrice24h")
        last = values.get("last_price")
        if prev is not None and last is not None:
            values["change_24h"] = last - prev
        return TickerUpdate(values=values, ts=self._timestamp(ts) if ts else None)
