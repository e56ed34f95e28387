"""
Pipeline for one (tenant, period): normalize -> analyzers -> correlation -> synthesis -> ranking -> budget plan.
Synchronous and deterministic: identical input gives identical ids, ordering and numbers.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping, Optional

from . import config_loader
from .analyzers import ANALYZERS
from .budget_optimizer import budget_inputs_from_cube, optimize_budget
from .correlation import correlate_findings
from .errors import InvariantViolation
from .financial_impact import check_impact
from .models import AnalysisContext, CognitiveFinding, CognitiveResponse, DataCube, GeneratedFor
from .normalizer import build_data_cube
from .observability.logger import analysis_run_context
from .pacing import project_pacing
from .ranker import order_findings, rank_recommendations, select_quick_wins
from .synthesizer import assess_mode, build_executive_summary, compute_health_score, select_bottleneck
from .thresholds import load_thresholds

logger = logging.getLogger(__name__)


def run_analyzers(ctx: AnalysisContext, cube: DataCube) -> list[CognitiveFinding]:
    """Every analyzer in fixed order; ids must be unique across the whole run."""
    findings: list[CognitiveFinding] = []
    for name, analyzer in ANALYZERS:
        produced = analyzer(ctx, cube)
        logger.debug("analyzer %s | findings=%s", name, len(produced))
        findings.extend(produced)
    seen: set[str] = set()
    for f in findings:
        if f.id in seen:
            raise InvariantViolation(f"duplicate finding id {f.id}")
        seen.add(f.id)
        if f.financial_impact is not None:
            check_impact(f.financial_impact)
    return findings


def analyze(
    ctx: AnalysisContext,
    cube: DataCube,
    *,
    findings_limit: Optional[int] = None,
    top_n: Optional[int] = None,
    quick_wins_n: Optional[int] = None,
) -> CognitiveResponse:
    findings_limit = findings_limit if findings_limit is not None else config_loader.get("findings_limit", 15)
    top_n = top_n if top_n is not None else config_loader.get("top_recommendations_n", 5)
    quick_wins_n = quick_wins_n if quick_wins_n is not None else config_loader.get("quick_wins_n", 3)
    period = f"{cube.meta.period_start.isoformat()}..{cube.meta.period_end.isoformat()}"

    with analysis_run_context(ctx.tenant_id, "cognitive_analysis", period=period) as stats:
        findings = correlate_findings(run_analyzers(ctx, cube))
        pacing = project_pacing(cube, ctx.rules("pacing"))
        health = compute_health_score(findings, pacing, cube, ctx.rules("health"))
        mode = assess_mode(findings, health, ctx.rules("mode"))
        bottleneck = select_bottleneck(findings, cube, ctx.rules("bottleneck"))
        check_impact(bottleneck.financial_impact)

        ordered = order_findings(findings, ctx.rules("ranker"))[:findings_limit]
        quick_wins = select_quick_wins(ordered, quick_wins_n)
        recommendations = rank_recommendations(ordered, quick_wins, top_n, ctx.rules("ranker"))

        budget_inputs = budget_inputs_from_cube(cube)
        budget_plan = optimize_budget(budget_inputs, rules=ctx.rules("budget")) if budget_inputs else None
        if budget_plan is not None and budget_plan.expected_total_roas < budget_plan.current_total_roas:
            raise InvariantViolation("budget plan lowers blended ROAS")

        summary = build_executive_summary(mode, bottleneck, cube, health, ordered, pacing)
        stats["findings_generated"] = len(findings)
        stats["mode"] = mode.mode
        stats["health_score"] = health

    return CognitiveResponse(
        generated_for=GeneratedFor(
            tenant_id=cube.meta.tenant_id,
            period_start=cube.meta.period_start,
            period_end=cube.meta.period_end,
        ),
        mode=mode,
        bottleneck=bottleneck,
        health_score=health,
        findings=ordered,
        pacing_projections=pacing,
        executive_summary=summary,
        recommendations=recommendations,
        quick_wins=[f.id for f in quick_wins],
        budget_plan=budget_plan,
    )


def run_analysis(
    tenant_id: str,
    period_start: date,
    period_end: date,
    *,
    as_of: Optional[date] = None,
    threshold_overrides: Optional[Mapping[str, Any]] = None,
    **sources: Any,
) -> CognitiveResponse:
    """
    Build the cube from raw per-source records (account, skus, sku_extras, campaigns, devices,
    demographics, geographic, web, funnel, channels, planning, history) and analyze it.
    Raises BadInputError on malformed records.
    """
    thresholds = load_thresholds(config_loader.get("thresholds_path"), overrides=dict(threshold_overrides or {}))
    cube = build_data_cube(tenant_id, period_start, period_end, as_of=as_of, thresholds=thresholds, **sources)
    ctx = AnalysisContext(tenant_id=tenant_id, thresholds=thresholds)
    return analyze(ctx, cube)
