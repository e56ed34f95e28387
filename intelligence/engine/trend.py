"""
Trend detection over daily history: 7-day moving average plus least-squares slope.
Slope is normalised to % of the series mean per day so SKUs of different size compare.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from .models import TrendData, TrendPoint
from .thresholds import TREND_RULES


def moving_average(values: Sequence[float], window: int) -> float:
    if not values:
        return 0.0
    tail = values[-window:]
    return float(np.mean(tail))


def slope_pct(values: Sequence[float]) -> float:
    """Least-squares slope per day as a percentage of the mean. 0 when flat or empty."""
    if len(values) < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    mean = float(y.mean())
    if mean == 0:
        return 0.0
    x = np.arange(len(y), dtype=float)
    slope = float(np.polyfit(x, y, 1)[0])
    out = slope / mean * 100
    return out if np.isfinite(out) else 0.0


def classify(slope: float, ma: float, prev_ma: float, rules: Optional[dict[str, Any]] = None) -> str:
    r = rules or TREND_RULES
    if slope > r["improving_slope_pct"] and ma >= prev_ma * r["improving_ma_floor"]:
        return "improving"
    if slope < r["declining_slope_pct"] and ma <= prev_ma * r["declining_ma_ceiling"]:
        return "declining"
    return "stable"


def analyze_trend(
    metric: str,
    points: Sequence[TrendPoint],
    rules: Optional[dict[str, Any]] = None,
) -> Optional[TrendData]:
    """None when there are fewer than `min_points` observations."""
    r = rules or TREND_RULES
    ordered = sorted(points, key=lambda p: p.day)
    if len(ordered) < r["min_points"]:
        return None
    values = [float(p.value) for p in ordered]
    window = int(r["window"])
    ma = moving_average(values, window)
    prev = values[:-window] if len(values) > window else values[: max(1, len(values) // 2)]
    prev_ma = moving_average(prev, window)
    s = slope_pct(values)
    return TrendData(
        metric=metric,
        direction=classify(s, ma, prev_ma, r),
        slope_pct=round(s, 2),
        moving_avg_7d=round(ma, 2),
        previous_moving_avg_7d=round(prev_ma, 2),
        points=len(values),
    )
