"""In-memory connections for tests and offline runs.

``MockConnector`` stands in for ``BaseWSClient``: each connect attempt takes
the next scripted session. Frame builders produce venue-native payloads so
the real codecs are exercised, and ``random_walk_frames`` fabricates a
moving book for dry runs without network access.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..core.errors import VenueConnectionError
from ..core.types import Venue
from ..core.utils import now_ms

Levels = Sequence[Tuple[float, float]]


class MockConnection:
    def __init__(
        self,
        frames: Iterable[Any] = (),
        hold_open: bool = False,
        interval_s: float = 0.0,
        label: str = "mock",
    ):
        self.frames = list(frames)
        self.hold_open = hold_open
        self.interval_s = interval_s
        self.label = label
        self.sent: List[Any] = []
        self.open = False
        self._closed = asyncio.Event()

    async def __aenter__(self) -> "MockConnection":
        self.open = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.open = False
        self._closed.set()

    async def send(self, raw: str) -> None:
        self.sent.append(raw)

    async def send_json(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)

    def drop(self) -> None:
        """Simulate the peer closing the connection."""
        self._closed.set()

    async def messages(self):
        for frame in self.frames:
            if self._closed.is_set():
                return
            await asyncio.sleep(self.interval_s)
            yield frame
        if self.hold_open:
            await self._closed.wait()


Session = Union[MockConnection, BaseException]


class MockConnector:
    """Connector returning scripted sessions in order.

    A session is a ``MockConnection`` or an exception instance, which is
    raised as a failed connect. ``by_url`` scripts sessions per endpoint;
    other URLs draw from ``sessions``. Once a script runs out every further
    attempt yields an idle connection that stays open.
    """

    def __init__(
        self,
        sessions: Iterable[Session] = (),
        by_url: Optional[Dict[str, Iterable[Session]]] = None,
    ):
        self.sessions = list(sessions)
        self.by_url = {url: list(s) for url, s in (by_url or {}).items()}
        self.attempts = 0
        self.connections: List[MockConnection] = []

    def __call__(
        self,
        url: str,
        open_timeout: float = 10.0,
        label: Optional[str] = None,
        venue: Optional[str] = None,
    ):
        self.attempts += 1
        script = self.by_url.get(url, self.sessions)
        session = script.pop(0) if script else MockConnection(hold_open=True)
        if isinstance(session, BaseException):
            return _FailingConnection(session, url)
        self.connections.append(session)
        return session


class _FailingConnection:
    def __init__(self, exc: BaseException, url: str):
        self.exc = exc
        self.url = url

    async def __aenter__(self):
        raise VenueConnectionError(f"connect to {self.url} failed: {self.exc}") from self.exc

    async def __aexit__(self, exc_type, exc, tb):
        return None


def _pairs(levels: Levels, as_str: bool) -> List[List[Any]]:
    if as_str:
        return [[str(p), str(s)] for p, s in levels]
    return [[p, s] for p, s in levels]


def okx_book_frame(symbol: str, bids: Levels, asks: Levels, ts: Optional[int] = None) -> Dict[str, Any]:
    return {
        "arg": {"channel": "books5", "instId": symbol},
        "data": [
            {
                "bids": [pair + ["0", "1"] for pair in _pairs(bids, True)],
                "asks": [pair + ["0", "1"] for pair in _pairs(asks, True)],
                "instId": symbol,
                "ts": str(ts if ts is not None else now_ms()),
            }
        ],
    }


def bybit_book_frame(symbol: str, bids: Levels, asks: Levels, ts: Optional[int] = None) -> Dict[str, Any]:
    return {
        "topic": f"orderbook.1.{symbol}",
        "type": "snapshot",
        "ts": ts if ts is not None else now_ms(),
        "data": {"s": symbol, "b": _pairs(bids, True), "a": _pairs(asks, True), "u": 1, "seq": 1},
    }


def deribit_book_frame(symbol: str, bids: Levels, asks: Levels, ts: Optional[int] = None) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": f"book.{symbol}.none.20.100ms",
            "data": {
                "instrument_name": symbol,
                "timestamp": ts if ts is not None else now_ms(),
                "bids": _pairs(bids, False),
                "asks": _pairs(asks, False),
                "change_id": 1,
            },
        },
    }


BOOK_FRAME_BUILDERS = {
    Venue.OKX: okx_book_frame,
    Venue.BYBIT: bybit_book_frame,
    Venue.DERIBIT: deribit_book_frame,
}


def book_frame(venue: Venue, symbol: str, bids: Levels, asks: Levels, ts: Optional[int] = None) -> Dict[str, Any]:
    return BOOK_FRAME_BUILDERS[Venue(venue)](symbol, bids, asks, ts)


def random_walk_frames(
    venue: Venue,
    symbol: str,
    steps: int,
    mid: float = 50_000.0,
    tick: float = 0.5,
    depth: int = 5,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """Venue-native book frames following a small random walk around ``mid``."""
    rng = rng or random.Random()
    frames = []
    for _ in range(steps):
        mid += rng.uniform(-5 * tick, 5 * tick)
        best_bid = round((mid - tick) / tick) * tick
        bids = [(best_bid - i * tick, round(rng.uniform(0.1, 5.0), 3)) for i in range(depth)]
        asks = [(best_bid + (i + 1) * tick * 2, round(rng.uniform(0.1, 5.0), 3)) for i in range(depth)]
        frames.append(book_frame(venue, symbol, bids, asks))
    return frames
