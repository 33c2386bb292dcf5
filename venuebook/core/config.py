"""Runtime settings loaded from the environment (and ``.env`` if present)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv  # type: ignore

DEFAULT_OKX_WS_URL = "wss://ws.okx.com:8443/ws/v5/public"
DEFAULT_BYBIT_WS_URL = "wss://stream.bybit.com/v5/public/linear"
DEFAULT_DERIBIT_WS_URL = "wss://www.deribit.com/ws/api/v2"


@dataclass
class Settings:
    reconnect_delay_s: float = 5.0
    connect_timeout_s: float = 10.0
    max_reconnect_attempts: Optional[int] = None  # None = retry forever
    heartbeat_interval_s: float = 20.0
    okx_ws_url: str = DEFAULT_OKX_WS_URL
    bybit_ws_url: str = DEFAULT_BYBIT_WS_URL
    deribit_ws_url: str = DEFAULT_DERIBIT_WS_URL
    okx_book_channel: str = "books5"
    bybit_book_depth: int = 1
    deribit_book_depth: int = 20
    log_level: str = "INFO"
    seed: Optional[int] = None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def load_settings() -> Settings:
    """Build ``Settings`` from ``VENUEBOOK_*`` environment variables."""
    load_dotenv()
    d = Settings()
    return Settings(
        reconnect_delay_s=_env_float("VENUEBOOK_RECONNECT_DELAY_S", d.reconnect_delay_s),
        connect_timeout_s=_env_float("VENUEBOOK_CONNECT_TIMEOUT_S", d.connect_timeout_s),
        max_reconnect_attempts=_env_int(
            "VENUEBOOK_MAX_RECONNECT_ATTEMPTS", d.max_reconnect_attempts
        ),
        heartbeat_interval_s=_env_float(
            "VENUEBOOK_HEARTBEAT_INTERVAL_S", d.heartbeat_interval_s
        ),
        okx_ws_url=os.getenv("VENUEBOOK_OKX_WS_URL") or d.okx_ws_url,
        bybit_ws_url=os.getenv("VENUEBOOK_BYBIT_WS_URL") or d.bybit_ws_url,
        deribit_ws_url=os.getenv("VENUEBOOK_DERIBIT_WS_URL") or d.deribit_ws_url,
        okx_book_channel=os.getenv("VENUEBOOK_OKX_BOOK_CHANNEL") or d.okx_book_channel,
        bybit_book_depth=_env_int("VENUEBOOK_BYBIT_BOOK_DEPTH", d.bybit_book_depth) or 1,
        deribit_book_depth=_env_int("VENUEBOOK_DERIBIT_BOOK_DEPTH", d.deribit_book_depth)
        or 20,
        log_level=(os.getenv("VENUEBOOK_LOG_LEVEL") or d.log_level).upper(),
        seed=_env_int("VENUEBOOK_SEED", d.seed),
    )
