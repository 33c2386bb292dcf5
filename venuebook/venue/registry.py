"""Venue tag to codec selection."""

from __future__ import annotations

from typing import Optional

from ..core.config import Settings
from ..core.types import Venue
from .base import VenueCodec
from .bybit import BybitCodec
from .deribit import DeribitCodec
from .okx import OKXCodec


def codec_for(venue: Venue, settings: Optional[Settings] = None) -> VenueCodec:
    """Return a fresh codec for ``venue`` configured from ``settings``."""
    s = settings or Settings()
    venue = Venue(venue)
    if venue == Venue.OKX:
        return OKXCodec(url=s.okx_ws_url, book_channel=s.okx_book_channel)
    if venue == Venue.BYBIT:
        return BybitCodec(url=s.bybit_ws_url, depth=s.bybit_book_depth)
    if venue == Venue.DERIBIT:
        return DeribitCodec(url=s.deribit_ws_url, depth=s.deribit_book_depth)
    raise ValueError(f"unsupported venue {venue!r}")
