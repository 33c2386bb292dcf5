"""Shared minimal WebSocket client.

It offers:
- Async connect context manager with an explicit open timeout
- Raw and JSON send helpers
- Message iterator with JSON decoding and error handling

Venue schemas differ; the adapter's codec interprets decoded messages.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core.errors import VenueConnectionError
from ..io import metrics

logger = logging.getLogger(__name__)

# Text heartbeat replies some venues send outside JSON
HEARTBEAT_FRAMES = ("ping", "pong", "PING", "PONG")


class BaseWSClient:
    def __init__(
        self,
        url: str,
        open_timeout: float = 10.0,
        label: Optional[str] = None,
        venue: Optional[str] = None,
    ):
        self.url = url
        self.open_timeout = open_timeout
        self.label = label or url
        # metric label; "unknown" when the client is used outside an adapter
        self.venue = venue or "unknown"
        self._ws: Any = None

    async def __aenter__(self) -> "BaseWSClient":
        try:
            self._ws = await websockets.connect(self.url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise VenueConnectionError(f"{self.label}: connect to {self.url} failed: {exc}") from exc
        logger.info("%s: connected to %s", self.label, self.url)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._ws is not None:
            try:
                await self._ws.close()
            finally:
                self._ws = None
                logger.info("%s: connection closed", self.label)

    async def send(self, raw: str) -> None:
        if self._ws is None:
            raise VenueConnectionError(f"{self.label}: not connected")
        try:
            await self._ws.send(raw)
        except ConnectionClosed as exc:
            raise VenueConnectionError(f"{self.label}: send on closed connection") from exc

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.send(json.dumps(payload))

    async def messages(self) -> AsyncIterator[Any]:
        """Yield decoded JSON frames until the connection closes."""
        if self._ws is None:
            raise VenueConnectionError(f"{self.label}: not connected")
        while True:
            try:
                raw = await self._ws.recv()
            except ConnectionClosed as exc:
                logger.info("%s: closed by peer (%s)", self.label, exc)
                return
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="ignore")
            if raw in HEARTBEAT_FRAMES:
                continue
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("%s: dropping non-JSON frame: %.200s", self.label, raw)
                metrics.inc_parse_error(self.venue)
                continue
            yield msg
