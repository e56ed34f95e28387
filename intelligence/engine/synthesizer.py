"""
Account-level synthesis over the finding list: health score, strategic mode,
main bottleneck and the executive summary.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from .financial_impact import quantify_revenue_uplift, zero_impact
from .formatting import format_brl, format_roas
from .models import (
    Bottleneck,
    CognitiveFinding,
    DataCube,
    ExecutiveSummary,
    KeyMetric,
    ModeAssessment,
    PacingProjection,
)
from .thresholds import BOTTLENECK_RULES, CONSTRAINT_PRIORITY, HEALTH_RULES, MODE_RULES

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"danger": 0, "warning": 1, "success": 2}

MODE_LABELS = {
    "ESCALAR": "Escalar",
    "OTIMIZAR": "Otimizar",
    "PROTEGER": "Proteger",
    "REESTRUTURAR": "Reestruturar",
}

MODE_DESCRIPTIONS = {
    "ESCALAR": "Healthy account with no critical problems: scale what works",
    "OTIMIZAR": "Mixed signals: tune efficiency before adding budget",
    "PROTEGER": "Critical problems dominate: protect margin and stop the losses first",
    "REESTRUTURAR": "Several structural problems at once: rethink the media and product mix",
}

CONSTRAINT_LABELS = {
    "traffic": "Traffic",
    "conversion": "Conversion",
    "aov": "Average ticket",
    "margin": "Margin",
    "budget": "Budget",
}


def _ladder(value: float, ladder: Sequence[Sequence[float]]) -> float:
    for minimum, score in ladder:
        if value >= minimum:
            return float(score)
    return float(ladder[-1][1])


def severity_component(findings: Sequence[CognitiveFinding], rules: Optional[Mapping[str, Any]] = None) -> float:
    r = rules or HEALTH_RULES
    danger = sum(1 for f in findings if f.severity == "danger")
    warning = sum(1 for f in findings if f.severity == "warning")
    success = sum(1 for f in findings if f.severity == "success")
    raw = 100 - r["danger_penalty"] * danger - r["warning_penalty"] * warning + r["success_bonus"] * success
    return max(0.0, min(100.0, raw))


def pacing_component(pacing: Sequence[PacingProjection], rules: Optional[Mapping[str, Any]] = None) -> float:
    r = rules or HEALTH_RULES
    revenue = [p for p in pacing if p.metric == "revenue"]
    chosen = revenue or list(pacing)
    if not chosen:
        return r["pacing_neutral"]
    return sum(r["pacing_scores"][p.scenario] for p in chosen) / len(chosen)


def roas_component(cube: DataCube, rules: Optional[Mapping[str, Any]] = None) -> float:
    r = rules or HEALTH_RULES
    acc = cube.account
    if acc is None or acc.cost <= 0:
        return r["roas_neutral"]
    target = cube.planning.roas
    if target:
        return _ladder(acc.roas / target, r["roas_target_ladder"])
    return _ladder(acc.roas, r["roas_absolute_ladder"])


def compute_health_score(
    findings: Sequence[CognitiveFinding],
    pacing: Sequence[PacingProjection],
    cube: DataCube,
    rules: Optional[Mapping[str, Any]] = None,
) -> int:
    """0-100. Adding a danger or warning finding never raises the score."""
    r = rules or HEALTH_RULES
    score = (
        r["severity_weight"] * severity_component(findings, r)
        + r["pacing_weight"] * pacing_component(pacing, r)
        + r["roas_weight"] * roas_component(cube, r)
    )
    return int(max(0, min(100, round(score))))


def assess_mode(
    findings: Sequence[CognitiveFinding],
    health_score: int,
    rules: Optional[Mapping[str, Any]] = None,
) -> ModeAssessment:
    r = rules or MODE_RULES
    dangers = [f for f in findings if f.severity == "danger"]
    warnings = [f for f in findings if f.severity == "warning"]
    warning_risks = [f for f in warnings if f.category == "risk"]
    structural = [
        f for f in findings
        if f.severity != "success" and f.category in r["structural_categories"]
    ]
    problems = dangers + warnings
    top_problem = max(problems, key=lambda f: f.net_impact) if problems else None

    signals = [
        f"Health score {health_score}/100",
        f"{len(dangers)} critical, {len(warnings)} warnings",
        f"{len(structural)} structural problems",
    ]

    if health_score >= r["escalate_health_min"] and not dangers and not warning_risks:
        mode = "ESCALAR"
    elif health_score < r["restructure_health_below"] and len(structural) >= r["restructure_min_structural"]:
        mode = "REESTRUTURAR"
    elif dangers and (len(dangers) >= len(warnings) or (top_problem is not None and top_problem.severity == "danger")):
        mode = "PROTEGER"
        if top_problem is not None:
            signals.append(f"Largest problem: {top_problem.title}")
    else:
        mode = "OTIMIZAR"

    return ModeAssessment(mode=mode, score=float(health_score), description=MODE_DESCRIPTIONS[mode], signals=signals)


def _bottleneck_key(f: CognitiveFinding) -> tuple:
    return (
        -f.net_impact,
        SEVERITY_RANK[f.severity],
        CONSTRAINT_PRIORITY.index(f.constraint),
        f.id,
    )


def _decomposition(cube: DataCube, rules: Mapping[str, Any]) -> Optional[Bottleneck]:
    """Revenue = sessions x conversion x AOV; simulate the configured uplift on each factor."""
    acc, web = cube.account, cube.web
    if acc is None or web is None or web.sessions <= 0:
        return None
    aov = web.avg_order_value or (acc.revenue / max(acc.conversions, 1))
    conv = web.conversion_rate / 100
    base = web.sessions * conv * aov
    if base <= 0:
        return None
    uplift = rules["decomposition_uplift_pct"]
    # +x% on any single factor moves revenue by the same amount; priority decides
    constraint = CONSTRAINT_PRIORITY[0]
    label = CONSTRAINT_LABELS[constraint]
    impact = quantify_revenue_uplift(base, uplift, f"+{uplift:g}% {label.lower()} on sessions x conversion x AOV", confidence=0.6)
    return Bottleneck(
        constraint=constraint,
        severity="warning",
        financial_impact=impact,
        unlock_action=rules["unlock_actions"][constraint],
        explanation=f"No finding isolates a constraint. A {uplift:g}% gain in {label.lower()} adds {format_brl(impact.net_impact_brl)} in revenue.",
    )


def select_bottleneck(
    findings: Sequence[CognitiveFinding],
    cube: DataCube,
    rules: Optional[Mapping[str, Any]] = None,
) -> Bottleneck:
    """
    Largest net impact among findings that map to a constraint; ties by severity,
    then constraint priority, then id. Falls back to the revenue decomposition,
    then to a zero-impact traffic default.
    """
    r = rules or BOTTLENECK_RULES
    candidates = [f for f in findings if f.constraint is not None]
    if candidates:
        best = min(candidates, key=_bottleneck_key)
        return Bottleneck(
            constraint=best.constraint,
            severity=best.severity,
            financial_impact=best.financial_impact or zero_impact("No quantified impact"),
            unlock_action=r["unlock_actions"][best.constraint],
            explanation=best.title,
            finding_id=best.id,
        )
    decomposed = _decomposition(cube, r)
    if decomposed is not None:
        return decomposed
    logger.debug("bottleneck | no constraint signal, using default")
    return Bottleneck(
        constraint="traffic",
        severity="success",
        financial_impact=zero_impact("Not enough data to locate a bottleneck", confidence=0.2),
        unlock_action=r["unlock_actions"]["traffic"],
        explanation="Not enough data to locate a bottleneck",
    )


def _scenario_status(scenario: str) -> str:
    return {"on_track": "ok", "at_risk": "warn"}.get(scenario, "danger")


def build_key_metrics(
    cube: DataCube,
    health_score: int,
    findings: Sequence[CognitiveFinding],
    pacing: Sequence[PacingProjection],
) -> list[KeyMetric]:
    metrics = [KeyMetric(
        label="Health score",
        value=f"{health_score}/100",
        status="ok" if health_score >= 75 else "warn" if health_score >= 50 else "danger",
    )]
    acc = cube.account
    if acc is not None and acc.cost > 0:
        target = cube.planning.roas
        if target:
            status = "ok" if acc.roas >= target else "warn" if acc.roas >= 0.8 * target else "danger"
        else:
            status = {"escalate": "ok", "hold": "warn"}.get(acc.status_tag, "danger")
        metrics.append(KeyMetric(label="ROAS", value=format_roas(acc.roas), status=status))
    revenue = next((p for p in pacing if p.metric == "revenue"), None)
    if revenue is not None:
        metrics.append(KeyMetric(
            label="Projected revenue",
            value=format_brl(revenue.projected_end_of_month),
            status=_scenario_status(revenue.scenario),
        ))
    opportunity = sum(f.net_impact for f in findings if f.severity != "danger")
    if opportunity > 0:
        metrics.append(KeyMetric(label="Total opportunity", value=format_brl(opportunity), status="ok"))
    risk = sum(f.net_impact for f in findings if f.severity == "danger")
    if risk > 0:
        metrics.append(KeyMetric(label="Identified risk", value=format_brl(risk), status="danger"))
    return metrics


def build_executive_summary(
    mode: ModeAssessment,
    bottleneck: Bottleneck,
    cube: DataCube,
    health_score: int,
    findings: Sequence[CognitiveFinding],
    pacing: Sequence[PacingProjection],
) -> ExecutiveSummary:
    headline = f"Modo: {MODE_LABELS[mode.mode]} | Gargalo: {CONSTRAINT_LABELS[bottleneck.constraint]}"
    top_action = bottleneck.unlock_action
    if bottleneck.financial_impact.net_impact_brl > 0:
        top_action = f"{top_action} (estimated impact {format_brl(bottleneck.financial_impact.net_impact_brl)})"
    return ExecutiveSummary(
        headline=headline,
        top_action=top_action,
        key_metrics=build_key_metrics(cube, health_score, findings, pacing),
    )
