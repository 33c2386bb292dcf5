"""Metrics instrumentation."""

from __future__ import annotations

from prometheus_client import Counter

frames_total = Counter(
    "venuebook_frames_total", "Frames decoded per venue and kind", ["venue", "kind"]
)
parse_errors_total = Counter(
    "venuebook_parse_errors_total", "Frames dropped as malformed", ["venue"]
)
reconnects_total = Counter(
    "venuebook_reconnects_total", "Reconnect attempts scheduled", ["venue"]
)
simulations_total = Counter(
    "venuebook_simulations_total", "Order simulations run", ["order_type"]
)


def inc_frame(venue: str, kind: str) -> None:
    frames_total.labels(venue=venue, kind=kind).inc()


def inc_parse_error(venue: str) -> None:
    parse_errors_total.labels(venue=venue).inc()


def inc_reconnect(venue: str) -> None:
    reconnects_total.labels(venue=venue).inc()


def inc_simulation(order_type: str) -> None:
    simulations_total.labels(order_type=order_type).inc()
