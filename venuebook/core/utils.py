"""Small utilities."""

from __future__ import annotations

import math
import time
from typing import Any, Optional


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def safe_div(n: float, d: float, default: Optional[float] = None) -> Optional[float]:
    if d == 0:
        return default
    return n / d


def to_float(value: Any) -> float:
    """Coerce a wire number (``"101.5"`` or ``101.5``) to float.

    Raises ``ValueError`` for anything else, including booleans, None,
    NaN and infinities.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            raise ValueError(f"not a number: {value!r}")
    except OverflowError as exc:
        raise ValueError(f"number out of range: {value!r}") from exc
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return number


def now_ms() -> int:
    return int(time.time() * 1000)
