"""Device analyzer: ROAS gaps between devices, scalable devices, devices burning spend without conversions."""
from __future__ import annotations

import logging

from ..financial_impact import quantify_budget_reallocation, quantify_underinvestment, quantify_wasted_spend
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "device"

def analyze_devices(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    if not cube.devices:
        return findings
    r = ctx.rules("device")
    devices = list(cube.devices)
    best = max(devices, key=lambda d: d.roas)

    # 1. Underperforming vs best device
    if best.roas > 0:
        for d in devices:
            if d is best or d.cost <= r["min_spend"]:
                continue
            ratio = d.roas / best.roas
            if ratio >= r["underperform_ratio"]:
                continue
            shift_pct = r["underperform_shift_pct"]
            shift = round(d.cost * shift_pct / 100, 2)
            findings.append(make_finding(
                NAME, "low-roas", d.key,
                category="efficiency",
                severity="danger" if ratio < r["danger_ratio"] else "warning",
                title=f"{d.label} ROAS {format_roas(d.roas)} vs {best.label} {format_roas(best.roas)}",
                description=(
                    f"{d.label} brings {format_pct(d.revenue_share, 0)} of revenue but returns "
                    f"{format_pct(ratio * 100, 0)} of the best device. Shift budget towards {best.label}."
                ),
                metrics={"current": d.roas, "target": best.roas, "ratio": round(ratio, 2), "entity": d.label},
                recommendations=[rec(
                    f"Lower {d.label} bids by {shift_pct:.0f}% and move the budget to {best.label}",
                    "high", "low",
                    [f"Set the {d.label} bid modifier to -{shift_pct:.0f}% on the main campaigns", "Watch ROAS for 7 days"],
                )],
                financial_impact=quantify_budget_reallocation(shift, d.roas, best.roas),
                constraint="margin",
            ))

    # 2. High-ROAS device with a small revenue share
    avg_spend = sum(d.cost for d in devices) / len(devices)
    for d in devices:
        if d.roas > r["opportunity_roas_above"] and d.revenue_share < r["opportunity_share_below"]:
            findings.append(make_finding(
                NAME, "opportunity", d.key,
                category="opportunity",
                severity="success",
                title=f"{d.label} ROAS {format_roas(d.roas)} with only {format_pct(d.revenue_share, 0)} of revenue",
                description=f"{d.label} has one of the best returns per device. More investment should add revenue.",
                metrics={"current": d.revenue_share, "target": r["opportunity_share_below"], "roas": d.roas, "entity": d.label},
                recommendations=[rec(f"Increase {d.label} investment by 20-30%", "high", "low")],
                financial_impact=quantify_underinvestment(d.cost, avg_spend, d.roas),
                constraint="budget",
            ))

    # 3. Spend without conversions
    for d in devices:
        if d.conversions == 0 and d.cost > r["waste_min_spend"]:
            findings.append(make_finding(
                NAME, "zero-conversions", d.key,
                category="efficiency",
                severity="warning",
                title=f"{d.label} spent {format_brl(d.cost)} without conversions",
                description=f"No conversion came from {d.label} in the period. Exclude it or cut its bids.",
                metrics={"current": d.cost, "entity": d.label},
                recommendations=[rec(f"Exclude {d.label} from campaigns or set its bid modifier to -100%", "medium", "low")],
                financial_impact=quantify_wasted_spend(d.cost),
                constraint="margin",
            ))

    logger.debug("device analyzer | findings=%s", len(findings))
    return findings
