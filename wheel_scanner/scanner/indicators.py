"""Technical indicators computed from daily price bars.

Every helper expects bars (or closes) ordered newest first, as returned by
:func:`sort_bars_desc`.
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Dict, List, Optional, Sequence

import pandas as pd

from ..models.market import PriceBar
from ..models.outcome import TrendDirection

DEFAULT_VOLUME_WINDOW = 20
DEFAULT_TREND_TOLERANCE_PCT = 0.5


def sort_bars_desc(bars: Sequence[PriceBar]) -> List[PriceBar]:
    """Return ``bars`` newest first. Bars sharing a date keep their input order."""

    return sorted(bars, key=lambda bar: bar.date, reverse=True)


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Tabulate bars as a date-indexed frame, newest first."""

    ordered = sort_bars_desc(bars)
    frame = pd.DataFrame(
        [bar.model_dump() for bar in ordered],
        columns=["date", "open", "high", "low", "close", "volume"],
    )
    return frame.set_index("date")


def compute_sma(closes: Sequence[float], window: int) -> Optional[float]:
    """Mean of the newest ``window`` closes, or ``None`` with too little history."""

    if window <= 0 or len(closes) < window:
        return None
    value = float(pd.Series(closes[:window], dtype="float64").mean())
    return value if math.isfinite(value) else None


def average_volume(bars: Sequence[PriceBar], window: int = DEFAULT_VOLUME_WINDOW) -> float:
    """Mean volume over the newest ``window`` bars (all bars when fewer exist)."""

    if not bars:
        return 0.0
    volumes = pd.Series([bar.volume for bar in bars[:window]], dtype="float64")
    return float(volumes.mean())


def sma_trend(
    closes: Sequence[float],
    period: int = 200,
    lookback: int = 20,
    tolerance_pct: float = DEFAULT_TREND_TOLERANCE_PCT,
) -> TrendDirection:
    """Classify the direction of the ``period`` SMA over the last ``lookback`` bars.

    The percent change from the SMA as of ``lookback`` bars ago to the current
    SMA is compared against a symmetric band of ``tolerance_pct``: above it is
    rising, below its negative is falling, anything inside is flat. Without
    ``period + lookback`` closes the direction is unknown.
    """

    if len(closes) < period + lookback:
        return TrendDirection.UNKNOWN

    current = compute_sma(closes, period)
    previous = compute_sma(closes[lookback:], period)
    if current is None or previous is None or previous <= 0:
        return TrendDirection.UNKNOWN

    change_pct = (current - previous) / previous * 100.0
    if change_pct > tolerance_pct:
        return TrendDirection.RISING
    if change_pct < -tolerance_pct:
        return TrendDirection.FALLING
    return TrendDirection.FLAT


def close_lookup(bars: Sequence[PriceBar]) -> Dict[dt.date, float]:
    """Map each trading date to its close. The first bar seen for a date wins."""

    lookup: Dict[dt.date, float] = {}
    for bar in bars:
        lookup.setdefault(bar.date, bar.close)
    return lookup


__all__ = [
    "average_volume",
    "bars_to_frame",
    "close_lookup",
    "compute_sma",
    "sma_trend",
    "sort_bars_desc",
]
