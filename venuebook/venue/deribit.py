"""Deribit JSON-RPC WebSocket codec (API v2).

Subscriptions go through ``public/subscribe``; data arrives as
``{"method": "subscription", "params": {"channel": ..., "data": {...}}}``.
Numbers are already numeric on the wire.

The default book channel is the grouped form
``book.<instrument>.none.<depth>.100ms`` which pushes complete snapshots of
``[price, amount]`` pairs. The raw ``book.<instrument>.100ms`` form carries
``[action, price, amount]`` triples; those are accepted too and read as a
full replacement.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List

from ..core.config import DEFAULT_DERIBIT_WS_URL
from ..core.events import TickerUpdate
from ..core.types import PriceLevel, Venue
from .base import ParsedFrame, VenueCodec

logger = logging.getLogger(__name__)


class DeribitCodec(VenueCodec):
    venue = Venue.DERIBIT

    def __init__(self, url: str = DEFAULT_DERIBIT_WS_URL, depth: int = 20):
        super().__init__(url)
        self.depth = depth
        self._ids = itertools.count(1)

    def native_symbol(self, symbol: str) -> str:
        symbol = symbol.upper()
        if symbol.endswith("-PERPETUAL"):
            return symbol
        base = symbol.split("-")[0] if "-" in symbol else symbol[:3]
        return f"{base}-PERPETUAL"

    def subscribe_messages(self, symbol: str) -> List[Dict[str, Any]]:
        channels = [f"book.{symbol}.none.{self.depth}.100ms", f"ticker.{symbol}.100ms"]
        return [
            {
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": "public/subscribe",
                "params": {"channels": [channel]},
            }
            for channel in channels
        ]

    def parse(self, message: Any) -> ParsedFrame:
        if not isinstance(message, dict):
            raise self._error(f"unexpected frame type {type(message).__name__}")
        if "error" in message:
            err = message.get("error")
            if isinstance(err, dict):
                raise self._error(f"venue error {err.get('code')}: {err.get('message')}", fatal=True)
            raise self._error(f"venue error: {err!r}", fatal=True)
        params = message.get("params")
        if params is None:
            # RPC result for our subscribe calls
            logger.debug("Deribit control frame id=%s", message.get("id"))
            return None
        if not isinstance(params, dict):
            raise self._error("params is not an object")
        channel = params.get("channel")
        data = params.get("data")
        if not isinstance(channel, str) or not isinstance(data, dict):
            raise self._error("missing params.channel or params.data")
        if channel.startswith("book."):
            bids = self._levels(data.get("bids"), "bids")
            asks = self._levels(data.get("asks"), "asks")
            return self._book(bids, asks, data.get("timestamp"))
        if channel.startswith("ticker."):
            return self._ticker(data)
        logger.debug("Deribit frame on unhandled channel %s", channel)
        return None

    def _level(self, entry: Any, side: str) -> PriceLevel:
        if isinstance(entry, (list, tuple)) and len(entry) == 3 and isinstance(entry[0], str):
            action, price, amount = entry
            if action == "delete":
                amount = 0
            return super()._level([price, amount], side)
        return super()._level(entry, side)

    def _ticker(self, data: Dict[str, Any]) -> TickerUpdate:
        values: Dict[str, float] = {}
        last = self._number(data, "last_price")
        if last is not None:
            values["last_price"] = last
        stats = data.get("stats")
        if isinstance(stats, dict):
            for wire, attr in (("high", "high_24h"), ("low", "low_24h"), ("volume", "volume_24h")):
                value = self._number(stats, wire)
                if value is not None:
                    values[attr] = value
            pct = self._number(stats, "price_change")
            if pct is not None:
                values["change_percent_24h"] = pct
                if last is not None and pct != -100:
                    values["change_24h"] = last - last / (1 + pct / 100)
        ts = data.get("timestamp")
        return TickerUpdate(values=values, ts=self._timestamp(ts) if ts else None)
