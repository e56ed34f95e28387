"""
Planning-gap analyzer: actuals vs the monthly plan.
Cumulative metrics (revenue, spend, sessions) are compared with the target pro-rated to today;
ratios (ROAS, conversion rate, ticket, CPA) are compared directly.
"""
from __future__ import annotations

import logging
from typing import Optional

from ..financial_impact import (
    quantify_cost_saving,
    quantify_overspend,
    quantify_revenue_gap,
    quantify_roas_shortfall,
    quantify_underinvestment,
    quantify_unit_gain,
    zero_impact,
)
from ..findings import make_finding, rec
from ..formatting import format_brl, format_number, format_pct, format_roas
from ..models import AnalysisContext, CognitiveFinding, DataCube
from ..normalizer import safe_div

logger = logging.getLogger(__name__)

NAME = "planning_gap"


def gap_pct(actual: float, expected: float) -> float:
    return safe_div(actual - expected, expected) * 100


def _severity(gap: float, danger_pct: float) -> str:
    """Shortfall beyond danger -> danger; any shortfall -> warning; ahead of plan -> success."""
    if gap < -danger_pct:
        return "danger"
    return "warning" if gap < 0 else "success"


def _revenue(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, acc = cube.planning.revenue, cube.account
    if not target or acc is None:
        return None
    r = ctx.rules("planning_gap")
    dom, dim = cube.meta.day_of_month, cube.meta.days_in_month
    prorated = target * dom / dim
    gap = gap_pct(acc.revenue, prorated)
    if abs(gap) <= r["revenue_gap_pct"]:
        return None
    remaining_days = dim - dom
    daily_needed = (target - acc.revenue) / remaining_days if remaining_days > 0 else 0.0
    projected = acc.revenue * dim / dom
    approval = ""
    if cube.planning.approval_rate and cube.planning.invoiced_revenue:
        approval = (
            f" With {format_pct(cube.planning.approval_rate * 100, 0)} approval the invoiced target is "
            f"{format_brl(cube.planning.invoiced_revenue)}."
        )
    behind = gap < 0
    return make_finding(
        NAME, "revenue", "account",
        category="planning_gap",
        severity=_severity(gap, r["revenue_danger_pct"]),
        title=f"Revenue {format_pct(abs(gap), 0)} {'behind' if behind else 'ahead of'} the planned pace",
        description=(
            f"Actual {format_brl(acc.revenue)} vs expected {format_brl(prorated)} by day {dom} "
            f"(monthly target {format_brl(target)}).{approval}"
        ),
        metrics={"current": acc.revenue, "target": target, "gap": round(gap, 2)},
        recommendations=[rec(f"Capture {format_brl(daily_needed)} per day to reach the target", "high", "medium")] if behind else [],
        financial_impact=quantify_revenue_gap(target, projected),
        constraint="traffic" if behind else None,
    )


def _roas(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, acc = cube.planning.roas, cube.account
    if not target or acc is None or acc.cost <= 0:
        return None
    r = ctx.rules("planning_gap")
    pause_roas = ctx.rules("status")["pause_roas_below"]
    waste_floor = ctx.rules("efficiency")["zero_conv_min_spend"]
    gap = gap_pct(acc.roas, target)
    if abs(gap) <= r["roas_gap_pct"]:
        return None
    severity = _severity(gap, r["roas_danger_pct"])
    return make_finding(
        NAME, "roas", "account",
        category="planning_gap",
        severity=severity,
        title=f"ROAS {format_pct(abs(gap), 0)} {'below' if gap < 0 else 'above'} target",
        description=f"ROAS {format_roas(acc.roas)} vs target {format_roas(target)}.",
        metrics={"current": acc.roas, "target": target, "gap": round(gap, 2)},
        recommendations=[rec(
            f"Review campaigns with ROAS below {pause_roas:g}",
            "high", "low",
            [f"List campaigns with ROAS below {pause_roas:g}", f"Pause those above {format_brl(waste_floor)} spend without conversions"],
        )] if severity == "danger" else [],
        financial_impact=quantify_roas_shortfall(acc.cost, acc.roas, target),
        constraint="margin" if gap < 0 else None,
    )


def _budget(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, acc = cube.planning.ad_spend, cube.account
    if not target or acc is None:
        return None
    r = ctx.rules("planning_gap")
    dom, dim = cube.meta.day_of_month, cube.meta.days_in_month
    expected = target * dom / dim
    gap = gap_pct(acc.cost, expected)
    if abs(gap) <= r["budget_gap_pct"]:
        return None
    over = gap > 0
    return make_finding(
        NAME, "budget", "account",
        category="planning_gap",
        severity="danger" if gap > r["budget_danger_pct"] else "warning",
        title=f"Spend {format_pct(abs(gap), 0)} {'above' if over else 'below'} the planned pace",
        description=f"Spend {format_brl(acc.cost)} vs {format_brl(expected)} expected by day {dom}. Monthly budget {format_brl(target)}.",
        metrics={"current": acc.cost, "target": target, "gap": round(gap, 2)},
        recommendations=[
            rec("Adjust daily budgets so the month stays within plan", "medium", "low")
            if over else
            rec("Spend is below plan and may limit revenue: redistribute to high-ROAS campaigns", "medium", "low")
        ],
        financial_impact=quantify_overspend(acc.cost, expected) if over else quantify_underinvestment(acc.cost, expected, acc.roas),
        constraint="margin" if over else "budget",
    )


def _conversion(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, web = cube.planning.conversion_rate, cube.web
    if not target or web is None or web.sessions <= 0:
        return None
    r = ctx.rules("planning_gap")
    actual = web.conversion_rate
    gap = gap_pct(actual, target)
    if gap >= -r["conversion_gap_pct"]:
        return None
    aov = web.avg_order_value
    extra_orders = web.sessions * (target - actual) / 100
    return make_finding(
        NAME, "conversion", "site",
        category="planning_gap",
        severity="danger" if gap < -r["conversion_danger_pct"] else "warning",
        title=f"Conversion rate {format_pct(abs(gap), 0)} below plan",
        description=f"Conversion {format_pct(actual, 2)} vs planned {format_pct(target, 2)}.",
        metrics={"current": actual, "target": target, "gap": round(gap, 2)},
        recommendations=[rec(
            "Investigate bottlenecks in the conversion funnel",
            "high", "medium",
            ["Check cart abandonment", "Review the checkout page", "Compare prices with competitors"],
        )],
        financial_impact=quantify_unit_gain(extra_orders, aov, "Extra orders at planned conversion x AOV") if aov else zero_impact("No orders to derive AOV"),
        constraint="conversion",
    )


def _ticket(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, acc = cube.planning.avg_ticket, cube.account
    if not target or acc is None or acc.conversions <= 0:
        return None
    r = ctx.rules("planning_gap")
    actual = acc.revenue / acc.conversions
    gap = gap_pct(actual, target)
    if abs(gap) <= r["ticket_gap_pct"]:
        return None
    behind = gap < 0
    return make_finding(
        NAME, "ticket", "account",
        category="planning_gap",
        severity=_severity(gap, r["ticket_danger_pct"]),
        title=f"Average ticket {format_pct(abs(gap), 0)} {'below' if behind else 'above'} plan",
        description=f"Ticket {format_brl(actual)} vs planned {format_brl(target)}.",
        metrics={"current": round(actual, 2), "target": target, "gap": round(gap, 2)},
        recommendations=[rec(
            "Promote higher-value SKUs or bundles to lift the ticket",
            "medium", "medium",
            ["Review the sold product mix", "Create bundles", "Revisit the upsell strategy"],
        )] if behind else [],
        financial_impact=(
            quantify_unit_gain(acc.conversions, target - actual, "Orders x ticket gap to plan")
            if behind else zero_impact("Ticket above plan", confidence=r["ahead_confidence"])
        ),
        constraint="aov" if behind else None,
    )


def _sessions(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, web = cube.planning.sessions, cube.web
    if not target or web is None:
        return None
    r = ctx.rules("planning_gap")
    dom, dim = cube.meta.day_of_month, cube.meta.days_in_month
    prorated = target * dom / dim
    gap = gap_pct(web.sessions, prorated)
    if abs(gap) <= r["sessions_gap_pct"]:
        return None
    behind = gap < 0
    missing = max(target - web.sessions, 0)
    conv = web.conversion_rate / 100
    return make_finding(
        NAME, "sessions", "site",
        category="planning_gap",
        severity=_severity(gap, r["sessions_danger_pct"]),
        title=f"Sessions {format_pct(abs(gap), 0)} {'behind' if behind else 'ahead of'} the planned pace",
        description=(
            f"Sessions {format_number(web.sessions)} vs {format_number(prorated)} expected "
            f"(monthly target {format_number(target)})."
        ),
        metrics={"current": web.sessions, "target": target, "gap": round(gap, 2)},
        recommendations=[rec("Increase media investment or CTR to generate more sessions", "high", "medium")] if behind else [],
        financial_impact=(
            quantify_unit_gain(missing * conv, web.avg_order_value, "Missing sessions x conversion, times AOV", confidence=r["sessions_confidence"])
            if behind else zero_impact("Sessions ahead of plan", confidence=r["ahead_confidence"])
        ),
        constraint="traffic" if behind else None,
    )


def _cpa(ctx: AnalysisContext, cube: DataCube) -> Optional[CognitiveFinding]:
    target, acc = cube.planning.cpa, cube.account
    if not target or acc is None or acc.conversions <= 0:
        return None
    r = ctx.rules("planning_gap")
    gap = gap_pct(acc.cpa, target)
    if gap <= r["cpa_gap_pct"]:
        return None
    return make_finding(
        NAME, "cpa", "account",
        category="planning_gap",
        severity="danger" if gap > r["cpa_danger_pct"] else "warning",
        title=f"CPA {format_pct(gap, 0)} above plan",
        description=f"CPA {format_brl(acc.cpa)} vs planned {format_brl(target)}.",
        metrics={"current": acc.cpa, "target": target, "gap": round(gap, 2)},
        recommendations=[rec(
            f"Bring CPA from {format_brl(acc.cpa)} down to {format_brl(target)}",
            "high", "medium",
            [f"Pause campaigns with CPA above {format_brl(ctx.rules('status')['pause_cpa_above'])}", "Tune bids on mid-performing campaigns", "Improve ad quality"],
        )],
        financial_impact=quantify_cost_saving(acc.cpa, target, acc.conversions, "CPA back to plan"),
        constraint="margin",
    )


def analyze_planning_gap(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    if cube.account is None and cube.web is None:
        return []
    findings = [
        f for f in (
            _revenue(ctx, cube),
            _roas(ctx, cube),
            _budget(ctx, cube),
            _conversion(ctx, cube),
            _ticket(ctx, cube),
            _sessions(ctx, cube),
            _cpa(ctx, cube),
        )
        if f is not None
    ]
    logger.debug("planning_gap analyzer | findings=%s", len(findings))
    return findings
