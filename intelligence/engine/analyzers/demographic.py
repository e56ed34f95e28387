"""Demographic analyzer: expensive age bands, under-funded best age band, ROAS gap between genders."""
from __future__ import annotations

import logging

from ..financial_impact import quantify_budget_reallocation, quantify_underinvestment, quantify_wasted_spend
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "demographic"
UNDETERMINED = {"AGE_RANGE_UNDETERMINED", "UNDETERMINED"}


def analyze_demographics(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    if not cube.demographics:
        return findings
    r = ctx.rules("demographic")
    ages = [d for d in cube.demographics if d.type == "age" and d.key not in UNDETERMINED]
    genders = [d for d in cube.demographics if d.type == "gender" and d.key not in UNDETERMINED]

    # 1. Age band with CPA well above the average
    with_spend = [a for a in ages if a.cost > r["min_spend"]]
    if len(with_spend) >= 2:
        avg_cpa = sum(a.cpa for a in with_spend) / len(with_spend)
        expensive = [a for a in with_spend if a.conversions > 0 and a.cpa > avg_cpa * r["age_cpa_multiple"]]
        if expensive:
            worst = sorted(expensive, key=lambda a: (-a.cpa, a.key))[0]
            # share of the band's spend above what the average CPA would have cost
            excess = worst.cost * (worst.cpa - avg_cpa) / worst.cpa
            findings.append(make_finding(
                NAME, "age-high-cpa", worst.key,
                category="efficiency",
                severity="warning",
                title=f"Age {worst.label} CPA {format_brl(worst.cpa)} (average {format_brl(avg_cpa)})",
                description=f"Age band {worst.label} pays {worst.cpa / avg_cpa:.1f}x the average CPA. Reduce investment in this audience.",
                metrics={"current": worst.cpa, "target": round(avg_cpa, 2), "entity": worst.label},
                recommendations=[rec(
                    f"Lower bids for age {worst.label} by 30-50%",
                    "medium", "low",
                    [f"Set the {worst.label} age bid modifier to -40%", "Watch CPA for 7 days"],
                )],
                financial_impact=quantify_wasted_spend(excess),
                constraint="margin",
            ))

    # 2. Best-returning age band with a small share
    converting = [a for a in ages if a.conversions > 0 and a.cost > r["min_spend"]]
    if len(converting) >= 2:
        best = sorted(converting, key=lambda a: (-a.roas, a.key))[0]
        avg_spend = sum(a.cost for a in converting) / len(converting)
        if best.roas > r["age_opportunity_roas_above"] and best.revenue_share < r["age_opportunity_share_below"]:
            findings.append(make_finding(
                NAME, "age-opportunity", best.key,
                category="opportunity",
                severity="success",
                title=f"Age {best.label} ROAS {format_roas(best.roas)} with only {format_pct(best.revenue_share, 0)} of revenue",
                description="Best audience by return. Raising investment here should add revenue efficiently.",
                metrics={"current": best.revenue_share, "target": r["age_opportunity_share_below"], "roas": best.roas, "entity": best.label},
                recommendations=[rec(f"Raise bids for age {best.label} by 20-30%", "high", "low")],
                financial_impact=quantify_underinvestment(best.cost, avg_spend, best.roas),
                constraint="budget",
            ))

    # 3. ROAS gap between genders
    converting = [g for g in genders if g.conversions > 0 and g.cost > r["gender_min_spend"]]
    if len(converting) >= 2:
        ordered = sorted(converting, key=lambda g: (-g.roas, g.key))
        best, worst = ordered[0], ordered[-1]
        if best.roas > 0 and worst.roas / best.roas < r["gender_gap_ratio"]:
            findings.append(make_finding(
                NAME, "gender-gap", worst.key,
                category="efficiency",
                severity="warning",
                title=f"{best.label} ROAS {format_roas(best.roas)} vs {worst.label} {format_roas(worst.roas)}",
                description=f"Large return gap between genders. Moving budget from {worst.label} to {best.label} improves efficiency.",
                metrics={"current": worst.roas, "target": best.roas, "entity": f"{worst.label} -> {best.label}"},
                recommendations=[rec(f"Move {r['gender_shift_ratio'] * 100:.0f}% of the {worst.label} budget to {best.label}", "medium", "low")],
                financial_impact=quantify_budget_reallocation(worst.cost * r["gender_shift_ratio"], worst.roas, best.roas),
                constraint="margin",
            ))

    logger.debug("demographic analyzer | findings=%s", len(findings))
    return findings
