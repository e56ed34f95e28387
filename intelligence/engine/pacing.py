"""
Month-end pacing: linear projection of cumulative metrics against the monthly plan.
projected = current x days_in_month / day_of_month
on_track >= 95% of target, at_risk >= 80%, off_track below (boundaries inclusive).
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from .models import DataCube, PacingProjection
from .thresholds import PACING_RULES

# metric, label, planning field, currency?
PACING_METRICS: tuple[tuple[str, str, str, bool], ...] = (
    ("revenue", "Revenue", "revenue", True),
    ("ad_spend", "Ad spend", "ad_spend", True),
    ("sessions", "Sessions", "sessions", False),
    ("orders", "Orders", "orders", False),
)


def _current(cube: DataCube, metric: str) -> Optional[float]:
    acc, web = cube.account, cube.web
    if metric == "revenue":
        return acc.revenue if acc else None
    if metric == "ad_spend":
        return acc.cost if acc else None
    if metric == "sessions":
        return float(web.sessions) if web else None
    if metric == "orders":
        if web and web.purchases:
            return float(web.purchases)
        return acc.conversions if acc else None
    return None


def classify_scenario(projected: float, target: float, rules: Optional[Mapping[str, Any]] = None) -> str:
    r = rules or PACING_RULES
    # rounded ratio so that exact boundary values compare as equal
    ratio = round(projected / target, 6) if target else 0.0
    if ratio >= r["on_track_ratio"]:
        return "on_track"
    if ratio >= r["at_risk_ratio"]:
        return "at_risk"
    return "off_track"


def project_metric(
    metric: str,
    label: str,
    current: float,
    target: float,
    day_of_month: int,
    days_in_month: int,
    is_currency: bool = True,
    rules: Optional[Mapping[str, Any]] = None,
) -> PacingProjection:
    r = rules or PACING_RULES
    dom = max(day_of_month, 1)
    projected = current * days_in_month / dom
    remaining = days_in_month - dom
    confidence = min(r["confidence_base"] + dom / days_in_month * r["confidence_slope"], r["confidence_cap"])
    return PacingProjection(
        metric=metric,
        label=label,
        current_value=round(current, 2),
        target=round(target, 2),
        projected_end_of_month=round(projected, 2),
        projected_gap_brl=round(target - projected, 2) if is_currency else 0.0,
        scenario=classify_scenario(projected, target, r),
        current_daily_rate=round(current / dom, 2),
        daily_rate_needed=round(max(target - current, 0) / remaining, 2) if remaining > 0 else 0.0,
        confidence=round(confidence, 2),
    )


def project_pacing(cube: DataCube, rules: Optional[Mapping[str, Any]] = None) -> list[PacingProjection]:
    """One projection per tracked metric that has both a target and a current value."""
    out = []
    for metric, label, field, is_currency in PACING_METRICS:
        target = getattr(cube.planning, field)
        current = _current(cube, metric)
        if not target or current is None:
            continue
        out.append(project_metric(
            metric, label, current, target, cube.meta.day_of_month, cube.meta.days_in_month, is_currency, rules,
        ))
    return out
