"""OKX public WebSocket codec (v5).

Book pushes look like::

    {"arg": {"channel": "books5", "instId": "BTC-USDT"},
     "data": [{"asks": [["101.5", "1.2", "0", "3"]], "bids": [...], "ts": "1700000000000"}]}

Prices and sizes arrive as strings. ``books5`` delivers full five-level
snapshots on every push, so each one replaces the book outright.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.config import DEFAULT_OKX_WS_URL
from ..core.events import TickerUpdate
from ..core.types import Venue
from ..core.utils import safe_div
from .base import ParsedFrame, VenueCodec

logger = logging.getLogger(__name__)

BOOK_CHANNELS = ("books", "books5", "bbo-tbt", "books50-l2-tbt", "books-l2-tbt")
TICKER_CHANNEL = "tickers"


class OKXCodec(VenueCodec):
    venue = Venue.OKX

    def __init__(self, url: str = DEFAULT_OKX_WS_URL, book_channel: str = "books5"):
        super().__init__(url)
        self.book_channel = book_channel

    def native_symbol(self, symbol: str) -> str:
        return symbol.upper()

    def subscribe_messages(self, symbol: str) -> List[Dict[str, Any]]:
        return [
            {"op": "subscribe", "args": [{"channel": self.book_channel, "instId": symbol}]},
            {"op": "subscribe", "args": [{"channel": TICKER_CHANNEL, "instId": symbol}]},
        ]

    def heartbeat_message(self) -> Optional[str]:
        return "ping"

    def parse(self, message: Any) -> ParsedFrame:
        if not isinstance(message, dict):
            raise self._error(f"unexpected frame type {type(message).__name__}")
        event = message.get("event")
        if event == "error":
            raise self._error(
                f"venue error {message.get('code')}: {message.get('msg')}", fatal=True
            )
        if event is not None:
            logger.debug("OKX control frame: %s", event)
            return None
        arg = message.get("arg") or {}
        channel = arg.get("channel") if isinstance(arg, dict) else None
        data = message.get("data")
        if channel is None or data is None:
            raise self._error("missing arg.channel or data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise self._error("data is not a non-empty list of objects")
        item = data[0]
        if channel in BOOK_CHANNELS:
            bids = self._levels(item.get("bids"), "bids")
            asks = self._levels(item.get("asks"), "asks")
            return self._book(bids, asks, item.get("ts"))
        if channel == TICKER_CHANNEL:
            return self._ticker(item)
        logger.debug("OKX frame on unhandled channel %s", channel)
        return None

    def _ticker(self, item: Dict[str, Any]) -> TickerUpdate:
        values: Dict[str, float] = {}
        last = self._number(item, "last")
        open_24h = self._number(item, "open24h")
        if last is not None:
            values["last_price"] = last
            if open_24h:
                change = last - open_24h
                values["change_24h"] = change
                values["change_percent_24h"] = safe_div(change, open_24h, 0.0) * 100
        for wire, attr in (("high24h", "high_24h"), ("low24h", "low_24h"), ("vol24h", "volume_24h")):
            value = self._number(item, wire)
            if value is not None:
                values[attr] = value
        ts = item.get("ts")
        return TickerUpdate(values=values, ts=self._timestamp(ts) if ts else None)
