"""
Efficiency analyzer: where spend is wasted across the account, campaigns and SKUs.
- account below the pause thresholds
- campaigns / SKUs spending without conversions
- low-ROAS campaigns worth reallocating
- SKUs with CPA above the ceiling
- spend concentrated in low-ROAS SKUs
"""
from __future__ import annotations

import logging

from ..financial_impact import (
    quantify_budget_reallocation,
    quantify_cost_saving,
    quantify_roas_shortfall,
    quantify_wasted_spend,
)
from ..findings import make_finding, rec
from ..formatting import format_brl, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube

logger = logging.getLogger(__name__)

NAME = "efficiency"


def _names(items: list, attr: str, limit: int = 3) -> str:
    names = [getattr(i, attr) for i in items[:limit]]
    more = f" and {len(items) - limit} more" if len(items) > limit else ""
    return ", ".join(names) + more


def _account_below_pause(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    acc = cube.account
    r = ctx.rules("efficiency")
    status = ctx.rules("status")
    if acc is None or acc.status_tag != "pause" or acc.cost <= r["account_min_spend"]:
        return []
    if acc.roas < status["pause_roas_below"]:
        impact = quantify_roas_shortfall(acc.cost, acc.roas, status["pause_roas_below"])
    else:
        impact = quantify_cost_saving(acc.cpa, status["pause_cpa_above"], acc.conversions, "CPA back to the ceiling")
    return [make_finding(
        NAME, "account-below-pause", "account",
        category="efficiency",
        severity="danger",
        title=f"Account ROAS {format_roas(acc.roas)} and CPA {format_brl(acc.cpa)} are in pause territory",
        description=(
            f"{format_brl(acc.cost)} of spend returned {format_brl(acc.revenue)} from {acc.conversions:g} conversions. "
            f"Below ROAS {status['pause_roas_below']:g} or above CPA {format_brl(status['pause_cpa_above'])} the operation loses money."
        ),
        metrics={"current": acc.roas, "target": status["pause_roas_below"], "cpa": acc.cpa, "cost": acc.cost},
        recommendations=[rec(
            "Urgent review of every campaign below break-even",
            "high", "high",
            [f"Pause campaigns with ROAS below {r['low_roas_campaign_below']:g}", "Cut bids by 20% on the remaining campaigns", "Focus budget on the top 5 SKUs by ROAS"],
        )],
        financial_impact=impact,
        constraint="margin",
    )]


def _zero_conversion_campaigns(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    r = ctx.rules("efficiency")
    zero = [c for c in cube.campaigns if c.cost > r["zero_conv_min_spend"] and c.conversions == 0]
    if not zero:
        return []
    waste = sum(c.cost for c in zero)
    return [make_finding(
        NAME, "zero-conversion-campaigns", "campaigns",
        category="efficiency",
        severity="danger",
        title=f"{len(zero)} campaign(s) without conversions spent {format_brl(waste)}",
        description=f"Campaigns: {_names(zero, 'campaign_name')}.",
        metrics={"current": round(waste, 2), "entity": zero[0].campaign_name, "count": len(zero)},
        recommendations=[rec(
            "Pause campaigns without conversions now",
            "high", "low",
            [f"Pause \"{c.campaign_name}\" ({format_brl(c.cost)} spent)" for c in zero[:3]],
        )],
        financial_impact=quantify_wasted_spend(waste),
        constraint="margin",
    )]


def _zero_conversion_skus(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    r = ctx.rules("efficiency")
    zero = [s for s in cube.skus if s.cost > r["zero_conv_min_spend"] and s.conversions == 0]
    if not zero:
        return []
    waste = sum(s.cost for s in zero)
    return [make_finding(
        NAME, "zero-conversion-skus", "skus",
        category="efficiency",
        severity="warning",
        title=f"{len(zero)} SKU(s) advertised without a sale: {format_brl(waste)}",
        description=f"SKUs: {_names(zero, 'name')}.",
        metrics={"current": round(waste, 2), "entity": zero[0].name, "count": len(zero)},
        recommendations=[rec(
            "Stop advertising SKUs that did not sell",
            "high", "low",
            [f"Remove \"{s.name}\" from shopping campaigns" for s in zero[:3]],
        )],
        financial_impact=quantify_wasted_spend(waste),
        constraint="margin",
    )]


def _low_roas_campaigns(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    r = ctx.rules("efficiency")
    hold_roas = ctx.rules("status")["hold_roas_below"]
    low = [
        c for c in cube.campaigns
        if c.cost > r["low_roas_campaign_min_spend"] and c.roas < r["low_roas_campaign_below"] and c.conversions > 0
    ]
    if not low:
        return []
    spend = sum(c.cost for c in low)
    avg_roas = sum(c.roas for c in low) / len(low)
    strong = sorted((c for c in cube.campaigns if c.roas > hold_roas), key=lambda c: (-c.roas, c.campaign_id))
    dest_roas = strong[0].roas if strong else hold_roas
    return [make_finding(
        NAME, "low-roas-campaigns", "campaigns",
        category="efficiency",
        severity="warning",
        title=f"{format_brl(spend)} invested in campaigns with ROAS below {r['low_roas_campaign_below']:g}",
        description=f"{len(low)} campaign(s) averaging ROAS {format_roas(avg_roas)}. Redistribute the budget.",
        metrics={"current": round(avg_roas, 2), "target": r["low_roas_campaign_target"], "spend": round(spend, 2)},
        recommendations=[rec(
            f"Move budget to campaigns with ROAS above {hold_roas:g}",
            "high", "medium",
            [f"Cut the budget of \"{c.campaign_name}\" (ROAS {format_roas(c.roas)})" for c in low[:3]],
        )],
        financial_impact=quantify_budget_reallocation(spend, avg_roas, dest_roas),
        constraint="margin",
    )]


def _high_cpa_skus(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    r = ctx.rules("efficiency")
    ceiling = r["high_cpa_above"]
    high = [s for s in cube.skus if s.cpa > ceiling and s.cost > r["high_cpa_min_spend"]]
    if not high:
        return []
    worst = sorted(high, key=lambda s: (-s.cpa, s.sku))[0]
    # saving is summed per SKU since each has its own CPA
    saving = sum((s.cpa - ceiling) * s.conversions for s in high)
    conversions = sum(s.conversions for s in high)
    blended_cpa = saving / conversions + ceiling if conversions else 0.0
    return [make_finding(
        NAME, "high-cpa-skus", "skus",
        category="efficiency",
        severity="warning",
        title=f"{len(high)} SKU(s) with CPA above {format_brl(ceiling)}",
        description=f"Worst: {worst.name} with CPA {format_brl(worst.cpa)} and ROAS {format_roas(worst.roas)}.",
        metrics={"current": worst.cpa, "target": ceiling, "entity": worst.name},
        recommendations=[rec(f"Review ads and bids for SKU {worst.sku}", "medium", "medium")],
        financial_impact=quantify_cost_saving(blended_cpa, ceiling, conversions, f"CPA down to {format_brl(ceiling)} on {len(high)} SKU(s)"),
        constraint="margin",
    )]


def _budget_in_low_roas_skus(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    r = ctx.rules("efficiency")
    hold_roas = ctx.rules("status")["hold_roas_below"]
    skus = cube.skus
    if len(skus) <= r["low_roas_budget_min_skus"]:
        return []
    total = sum(s.cost for s in skus)
    low = [s for s in skus if s.roas < r["low_roas_budget_below"] and s.cost > 0]
    low_spend = sum(s.cost for s in low)
    pct = low_spend / total * 100 if total else 0.0
    if pct <= r["low_roas_budget_share_above"]:
        return []
    high = [s for s in skus if s.roas > hold_roas]
    avg_high = sum(s.roas for s in high) / len(high) if high else hold_roas
    avg_low = sum(s.roas for s in low) / len(low) if low else 0.0
    return [make_finding(
        NAME, "budget-in-low-roas-skus", "skus",
        category="efficiency",
        severity="warning",
        title=f"{format_pct(pct, 0)} of spend sits in SKUs with ROAS below {r['low_roas_budget_below']:g}",
        description=f"{format_brl(low_spend)} of {format_brl(total)} is spread over {len(low)} low-return SKUs.",
        metrics={"current": round(pct, 2), "target": r["low_roas_budget_share_target"]},
        recommendations=[rec(f"Redistribute budget to SKUs with ROAS above {hold_roas:g}", "high", "medium")],
        financial_impact=quantify_budget_reallocation(low_spend * r["low_roas_budget_shift_ratio"], avg_low, avg_high),
        constraint="budget",
    )]


def analyze_efficiency(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    findings: list[CognitiveFinding] = []
    for rule in (
        _account_below_pause,
        _zero_conversion_campaigns,
        _zero_conversion_skus,
        _low_roas_campaigns,
        _high_cpa_skus,
        _budget_in_low_roas_skus,
    ):
        findings.extend(rule(ctx, cube))
    logger.debug("efficiency analyzer | findings=%s", len(findings))
    return findings
