"""Geographic analyzer: revenue concentration, scalable regions, wasteful regions."""
from __future__ import annotations

import logging

from ..financial_impact import quantify_concentration_risk, quantify_underinvestment, quantify_wasted_spend
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "geographic"


def analyze_geographic(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    if not cube.geographic:
        return findings
    r = ctx.rules("geographic")
    regions = [g for g in cube.geographic if g.cost > r["min_spend"]]
    if len(regions) < r["min_regions"]:
        return findings
    avg_spend = sum(g.cost for g in regions) / len(regions)

    # 1. One region carries most of the revenue (cube keeps regions sorted by revenue desc)
    top = cube.geographic[0]
    if top.revenue_share > r["concentration_share_above"]:
        findings.append(make_finding(
            NAME, "concentration", top.key,
            category="risk",
            severity="warning",
            title=f"{top.label} holds {format_pct(top.revenue_share, 0)} of revenue",
            description="High geographic dependency. A drop in this region hits the whole operation.",
            metrics={"current": top.revenue_share, "target": r["concentration_target"], "entity": top.label},
            recommendations=[rec(
                "Diversify investment into other regions with good ROAS",
                "medium", "medium",
                [f"Raise budget in secondary regions with ROAS above {r['waste_target_roas']:g}", "Create geo-targeted campaigns for under-served regions"],
            )],
            financial_impact=quantify_concentration_risk(top.revenue, top.revenue_share, top.label),
        ))

    # 2. Scalable region
    scalable = [g for g in regions if g.roas > r["scalable_roas_above"] and g.revenue_share < r["scalable_share_below"] and g.conversions > 0]
    if scalable:
        best = sorted(scalable, key=lambda g: (-g.roas, g.key))[0]
        findings.append(make_finding(
            NAME, "scale", best.key,
            category="opportunity",
            severity="success",
            title=f"{best.label} ROAS {format_roas(best.roas)} with only {format_pct(best.revenue_share, 0)} of revenue",
            description="Region with excellent return and little investment. Scaling should add revenue efficiently.",
            metrics={"current": best.revenue_share, "target": r["scalable_share_below"], "roas": best.roas, "entity": best.label},
            recommendations=[rec(f"Increase investment in {best.label} by 30-50%", "high", "low")],
            financial_impact=quantify_underinvestment(best.cost, avg_spend, best.roas),
            constraint="budget",
        ))

    # 3. Wasteful region
    wasteful = [g for g in regions if g.roas < r["waste_roas_below"] and g.cost > r["waste_min_spend"]]
    if wasteful:
        worst = sorted(wasteful, key=lambda g: (g.roas, g.key))[0]
        findings.append(make_finding(
            NAME, "waste", worst.key,
            category="efficiency",
            severity="warning",
            title=f"{worst.label} spent {format_brl(worst.cost)} at ROAS {format_roas(worst.roas)}",
            description="Low-return region. Cut investment and move it to more efficient regions.",
            metrics={"current": worst.roas, "target": r["waste_target_roas"], "entity": worst.label},
            recommendations=[rec(f"Cut investment in {worst.label} by {r['waste_cut_ratio'] * 100:.0f}%", "medium", "low")],
            financial_impact=quantify_wasted_spend(worst.cost * r["waste_cut_ratio"]),
            constraint="margin",
        ))

    logger.debug("geographic analyzer | findings=%s", len(findings))
    return findings
