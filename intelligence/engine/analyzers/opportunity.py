"""Opportunity analyzer: under-funded star SKUs, SKUs tagged escalate, account-level growth headroom."""
from __future__ import annotations

import logging

from ..financial_impact import quantify_revenue_uplift, quantify_underinvestment
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "opportunity"


def analyze_opportunities(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    r = ctx.rules("opportunity")
    skus = cube.skus

    if skus:
        spending = [s for s in skus if s.cost > 0]
        avg_spend = sum(s.cost for s in spending) / max(len(spending), 1)

        # 1. Stars: high ROAS, spend far below the average
        stars = [
            s for s in spending
            if s.roas > r["star_roas_above"]
            and s.cost < avg_spend * r["star_spend_below_avg_ratio"]
            and s.conversions >= r["star_min_conversions"]
        ]
        if stars:
            top = sorted(stars, key=lambda s: (-s.roas, s.sku))[0]
            findings.append(make_finding(
                NAME, "underinvested-skus", top.sku,
                category="opportunity",
                severity="success",
                title=f"{len(stars)} SKU(s) with high ROAS and little investment",
                description=f"{top.name} returns ROAS {format_roas(top.roas)} on only {format_brl(top.cost)} (average {format_brl(avg_spend)}).",
                metrics={"current": top.roas, "spend": top.cost, "average_spend": round(avg_spend, 2), "entity": top.name},
                recommendations=[rec(
                    f"Raise the budget of \"{top.name}\" (ROAS {format_roas(top.roas)})",
                    "high", "low",
                    [f"Scale \"{s.name}\": ROAS {format_roas(s.roas)}, spend {format_brl(s.cost)}" for s in stars[:3]],
                )],
                financial_impact=quantify_underinvestment(top.cost, avg_spend, top.roas),
                constraint="budget",
            ))

        # 2. SKUs tagged escalate
        scalable = [s for s in skus if s.status_tag == "escalate"]
        if 0 < len(scalable) <= r["scalable_max_skus"]:
            revenue = sum(s.revenue for s in scalable)
            findings.append(make_finding(
                NAME, "escalate-skus", "skus",
                category="opportunity",
                severity="success",
                title=f"{len(scalable)} SKU(s) ready to scale",
                description=(
                    "Healthy ROAS, good margin and stock: " + ", ".join(s.name for s in scalable)
                    + f". Combined revenue {format_brl(revenue)}."
                ),
                metrics={"current": round(revenue, 2), "count": len(scalable)},
                recommendations=[rec("Increase investment in SKUs tagged escalate", "high", "low")],
                financial_impact=quantify_revenue_uplift(
                    revenue, r["scalable_uplift_pct"], f"+{format_pct(r['scalable_uplift_pct'], 0)} on escalate SKUs", confidence=r["scalable_confidence"],
                ),
                constraint="budget",
            ))

    # 3. Account has room to grow
    acc = cube.account
    if acc is not None and acc.roas > r["growth_roas_above"] and acc.cost > r["growth_min_spend"]:
        increase = acc.cost * r["growth_increase_pct"] / 100
        findings.append(make_finding(
            NAME, "growth-headroom", "account",
            category="opportunity",
            severity="success",
            title=f"Account ROAS {format_roas(acc.roas)} leaves room to grow",
            description=f"With ROAS above {r['growth_roas_above']:g} the account can spend more and stay profitable. Test new audiences or creatives.",
            metrics={"current": acc.roas, "spend": acc.cost},
            recommendations=[rec(f"Test a {r['growth_increase_pct']:g}% increase in total budget", "medium", "low")],
            # incremental spend assumed to return a decayed ROAS
            financial_impact=quantify_underinvestment(acc.cost, acc.cost + increase, acc.roas * r["growth_roas_decay"]),
            constraint="budget",
        ))

    logger.debug("opportunity analyzer | findings=%s", len(findings))
    return findings
