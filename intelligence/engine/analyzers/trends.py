"""Trend analyzer: reads the trend data the normalizer derived from daily history."""
from __future__ import annotations

import logging

from ..financial_impact import quantify_revenue_uplift, zero_impact
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "trend"


def analyze_trends(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    r = ctx.rules("trend_findings")
    rev = cube.trends.account_revenue

    if rev is not None and rev.direction == "declining":
        drop = abs(rev.slope_pct) * cube.meta.days_in_period
        base = cube.account.revenue if cube.account else rev.moving_avg_7d * cube.meta.days_in_period
        findings.append(make_finding(
            NAME, "revenue-declining", "account",
            category="trend",
            severity="warning",
            title=f"Revenue falling {format_pct(abs(rev.slope_pct))} per day",
            description=(
                f"7-day average {format_brl(rev.moving_avg_7d)} vs {format_brl(rev.previous_moving_avg_7d)} before. "
                "Check seasonality, stock-outs and campaign changes."
            ),
            metrics={"current": rev.moving_avg_7d, "target": rev.previous_moving_avg_7d, "slope_pct": rev.slope_pct},
            recommendations=[rec(
                "Find what changed before revenue started to fall",
                "high", "medium",
                ["Compare campaign changes in the last 14 days", "Check stock on top sellers", "Compare with the same period last year"],
            )],
            financial_impact=quantify_revenue_uplift(
                base, min(drop, r["max_decline_pct"]), "Revenue lost if the decline runs the whole period",
                confidence=r["declining_confidence"],
            ),
            constraint="traffic",
        ))
    elif rev is not None and rev.direction == "improving":
        findings.append(make_finding(
            NAME, "revenue-improving", "account",
            category="trend",
            severity="success",
            title=f"Revenue growing {format_pct(rev.slope_pct)} per day",
            description=f"7-day average {format_brl(rev.moving_avg_7d)} vs {format_brl(rev.previous_moving_avg_7d)} before.",
            metrics={"current": rev.moving_avg_7d, "target": rev.previous_moving_avg_7d, "slope_pct": rev.slope_pct},
            financial_impact=zero_impact("Positive momentum; no recoverable gap", confidence=r["improving_confidence"]),
        ))

    by_key = {s.sku: s for s in cube.skus}
    declining = [
        (key, t) for key, t in cube.trends.skus
        if t.direction == "declining" and key in by_key and by_key[key].cost > r["sku_min_spend"]
    ]
    declining.sort(key=lambda kt: (kt[1].slope_pct, kt[0]))
    for key, t in declining[: r["sku_limit"]]:
        sku = by_key[key]
        findings.append(make_finding(
            NAME, "sku-declining", key,
            category="trend",
            severity="warning",
            title=f"{sku.name} revenue falling {format_pct(abs(t.slope_pct))} per day",
            description=f"{sku.name} still spends {format_brl(sku.cost)} while its revenue trends down.",
            metrics={"current": t.moving_avg_7d, "target": t.previous_moving_avg_7d, "slope_pct": t.slope_pct, "entity": sku.name},
            recommendations=[rec(f"Review price, stock and ads for {sku.name}", "medium", "low")],
            constraint="margin",
        ))

    logger.debug("trend analyzer | findings=%s", len(findings))
    return findings
