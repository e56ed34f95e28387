"""
Translate findings into BRL. Every quantifier returns a FinancialImpact with
net_impact_brl == gross_impact_brl - cost_brl and net >= 0, plus the calculation
spelled out with the real numbers. A move that would not pay for itself yields zero impact.
"""
from __future__ import annotations

from .errors import InvariantViolation
from .formatting import format_brl, format_number, format_pct, format_roas
from .models import FinancialImpact


def _impact(gross: float, cost: float, calculation: str, confidence: float = 0.5) -> FinancialImpact:
    gross = round(max(0.0, gross), 2)
    cost = round(max(0.0, cost), 2)
    net = round(gross - cost, 2)
    if net < 0:
        return zero_impact(f"{calculation} (no net gain: cost exceeds return)", confidence)
    impact = FinancialImpact(
        gross_impact_brl=gross,
        cost_brl=cost,
        net_impact_brl=net,
        calculation=calculation,
        confidence=round(confidence, 2),
    )
    check_impact(impact)
    return impact


def zero_impact(calculation: str, confidence: float = 0.5) -> FinancialImpact:
    return FinancialImpact(gross_impact_brl=0.0, cost_brl=0.0, net_impact_brl=0.0, calculation=calculation, confidence=confidence)


def check_impact(impact: FinancialImpact) -> None:
    """Raise InvariantViolation unless net == gross - cost (to the cent) and all parts are >= 0."""
    if impact.gross_impact_brl < 0 or impact.cost_brl < 0 or impact.net_impact_brl < 0:
        raise InvariantViolation(f"negative impact component: {impact}")
    if round(impact.gross_impact_brl - impact.cost_brl, 2) != round(impact.net_impact_brl, 2):
        raise InvariantViolation(f"net != gross - cost: {impact}")


# ----- Canonical quantifiers -----
def quantify_wasted_spend(cost: float) -> FinancialImpact:
    """Spend that produced nothing: all of it is recoverable at no cost."""
    return _impact(
        cost,
        0.0,
        f"{format_brl(cost)} spend with zero return, period total",
        confidence=0.9,
    )


def quantify_underinvestment(current_spend: float, benchmark_spend: float, roas: float) -> FinancialImpact:
    """Bring spend up to the benchmark at the entity's current ROAS. Zero when already at/above benchmark."""
    delta = benchmark_spend - current_spend
    if delta <= 0:
        return zero_impact(
            f"Spend {format_brl(current_spend)} already at or above benchmark {format_brl(benchmark_spend)}"
        )
    return _impact(
        delta * roas,
        delta,
        f"({format_brl(benchmark_spend)} benchmark - {format_brl(current_spend)} current) = {format_brl(delta)} "
        f"x ROAS {format_roas(roas)} = {format_brl(delta * roas)} revenue, minus {format_brl(delta)} extra spend",
        confidence=0.6,
    )


def quantify_budget_reallocation(amount: float, source_roas: float, dest_roas: float) -> FinancialImpact:
    """Move `amount` from a source to a destination. Only a gain when the destination returns more."""
    if amount <= 0 or dest_roas <= source_roas:
        return zero_impact(
            f"No gain moving {format_brl(amount)}: destination ROAS {format_roas(dest_roas)} "
            f"<= source ROAS {format_roas(source_roas)}"
        )
    return _impact(
        amount * dest_roas,
        amount * source_roas,
        f"{format_brl(amount)} x ROAS {format_roas(dest_roas)} at destination = {format_brl(amount * dest_roas)}, "
        f"minus {format_brl(amount)} x ROAS {format_roas(source_roas)} lost at source = {format_brl(amount * source_roas)}",
        confidence=0.6,
    )


# ----- Supplementary quantifiers -----
def quantify_revenue_uplift(base_revenue: float, uplift_pct: float, description: str, confidence: float = 0.5) -> FinancialImpact:
    """Revenue gained by improving a rate by `uplift_pct` with no extra spend."""
    gain = base_revenue * uplift_pct / 100
    return _impact(
        gain,
        0.0,
        f"{description}: {format_brl(base_revenue)} x {format_pct(uplift_pct)} = {format_brl(gain)}",
        confidence=confidence,
    )


def quantify_cost_saving(current_cost: float, target_cost: float, units: float, description: str) -> FinancialImpact:
    """(current unit cost - target unit cost) x units. Zero when already at target."""
    delta = current_cost - target_cost
    if delta <= 0 or units <= 0:
        return zero_impact(f"{description}: unit cost {format_brl(current_cost)} within target {format_brl(target_cost)}")
    saving = delta * units
    return _impact(
        saving,
        0.0,
        f"{description}: ({format_brl(current_cost)} - {format_brl(target_cost)}) x {format_number(units)} = {format_brl(saving)}",
        confidence=0.5,
    )


def quantify_revenue_gap(target_revenue: float, projected_revenue: float) -> FinancialImpact:
    gap = target_revenue - projected_revenue
    if gap <= 0:
        return zero_impact(f"Projection {format_brl(projected_revenue)} meets target {format_brl(target_revenue)}")
    return _impact(
        gap,
        0.0,
        f"Target {format_brl(target_revenue)} - projected {format_brl(projected_revenue)} = {format_brl(gap)} to recover by month end",
        confidence=0.7,
    )


def quantify_pause(cost: float, revenue: float, margin_pct: float) -> FinancialImpact:
    """Stop spend on entities whose margin does not cover ads: saving = cost - gross profit lost."""
    profit_lost = revenue * margin_pct / 100
    return _impact(
        cost,
        profit_lost,
        f"Pausing saves {format_brl(cost)} spend and forgoes {format_brl(revenue)} x {format_pct(margin_pct)} margin "
        f"= {format_brl(profit_lost)} gross profit",
        confidence=0.7,
    )


def quantify_concentration_risk(revenue_at_risk: float, share_pct: float, label: str) -> FinancialImpact:
    """Exposure, not a gain: reported in the calculation only."""
    return zero_impact(
        f"{format_brl(revenue_at_risk)} ({format_pct(share_pct)} of revenue) depends on {label}; exposure, not recoverable gain",
        confidence=0.4,
    )


def quantify_bounce(sessions: int, bounce_rate: float, target_bounce: float, conversion_rate_pct: float, aov: float) -> FinancialImpact:
    """Sessions kept by bringing bounce down to target, converted at the current rate and AOV."""
    recovered = sessions * max(0.0, bounce_rate - target_bounce)
    gain = recovered * conversion_rate_pct / 100 * aov
    return _impact(
        gain,
        0.0,
        f"{format_number(recovered)} sessions recovered (bounce {format_pct(bounce_rate * 100)} -> {format_pct(target_bounce * 100)}) "
        f"x {format_pct(conversion_rate_pct, 2)} conversion x {format_brl(aov)} AOV = {format_brl(gain)}",
        confidence=0.35,
    )


def quantify_cart_abandonment(purchases: int, abandonment_pct: float, target_pct: float, aov: float) -> FinancialImpact:
    """Orders recovered by lowering abandonment to target. Carts = purchases / (1 - abandonment)."""
    if abandonment_pct >= 100 or purchases <= 0:
        return zero_impact("Not enough completed purchases to size cart recovery")
    carts = purchases / (1 - abandonment_pct / 100)
    recovered = carts * max(0.0, abandonment_pct - target_pct) / 100
    gain = recovered * aov
    return _impact(
        gain,
        0.0,
        f"{format_number(carts)} carts x ({format_pct(abandonment_pct)} - {format_pct(target_pct)}) = "
        f"{format_number(recovered)} orders x {format_brl(aov)} AOV = {format_brl(gain)}",
        confidence=0.35,
    )


def quantify_roas_shortfall(cost: float, roas: float, floor_roas: float) -> FinancialImpact:
    """Revenue missing for the spend to reach the ROAS floor at the same cost."""
    gap = cost * max(0.0, floor_roas - roas)
    return _impact(
        gap,
        0.0,
        f"{format_brl(cost)} spend x (ROAS floor {format_roas(floor_roas)} - current {format_roas(roas)}) = {format_brl(gap)} revenue gap",
        confidence=0.6,
    )


def quantify_unit_gain(units: float, unit_value: float, description: str, confidence: float = 0.4) -> FinancialImpact:
    """units x value per unit (extra orders x AOV, orders x ticket uplift)."""
    gain = units * unit_value
    return _impact(
        gain,
        0.0,
        f"{description}: {format_number(units, 1)} x {format_brl(unit_value)} = {format_brl(gain)}",
        confidence=confidence,
    )


def quantify_overspend(actual_spend: float, expected_spend: float) -> FinancialImpact:
    over = actual_spend - expected_spend
    if over <= 0:
        return zero_impact(f"Spend {format_brl(actual_spend)} within the expected {format_brl(expected_spend)}")
    return _impact(
        over,
        0.0,
        f"Spend {format_brl(actual_spend)} - expected to date {format_brl(expected_spend)} = {format_brl(over)} overspend",
        confidence=0.7,
    )
