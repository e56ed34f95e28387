"""Plain-text rendering of a CognitiveResponse, sized for inclusion in an LLM prompt."""
from __future__ import annotations

from .formatting import format_brl, format_pct
from .models import CognitiveResponse

SEVERITY_TAGS = {"danger": "CRITICAL", "warning": "WARNING", "success": "POSITIVE"}


def build_context_summary(response: CognitiveResponse, max_findings: int = 10) -> str:
    gf = response.generated_for
    b = response.bottleneck
    lines = [
        f"INTELLIGENCE SUMMARY | tenant {gf.tenant_id} | {gf.period_start.isoformat()} to {gf.period_end.isoformat()}",
        f"Mode: {response.mode.mode} (score {response.mode.score:.0f}/100) - {response.mode.description}",
        f"Health score: {response.health_score}/100",
        f"Bottleneck: {b.constraint} ({b.severity}) - {b.unlock_action}",
        f"Bottleneck impact: {format_brl(b.financial_impact.net_impact_brl)} | {b.financial_impact.calculation}",
        "",
        f"Headline: {response.executive_summary.headline}",
        f"Top action: {response.executive_summary.top_action}",
    ]
    if response.executive_summary.key_metrics:
        lines.append("Key metrics: " + "; ".join(
            f"{m.label} {m.value} [{m.status}]" for m in response.executive_summary.key_metrics
        ))

    if response.pacing_projections:
        lines += ["", "PACING"]
        for p in response.pacing_projections:
            ratio = p.projected_end_of_month / p.target * 100 if p.target else 0.0
            lines.append(
                f"- {p.label}: projected {p.projected_end_of_month:,.2f} vs target {p.target:,.2f} "
                f"({format_pct(ratio, 0)}, {p.scenario})"
            )

    if response.findings:
        lines += ["", f"FINDINGS (top {min(max_findings, len(response.findings))} of {len(response.findings)})"]
        for f in response.findings[:max_findings]:
            lines.append(f"- [{SEVERITY_TAGS[f.severity]}] {f.title} | impact {format_brl(f.net_impact)} | id {f.id}")
            if f.root_cause:
                lines.append(f"  root cause: {f.root_cause}")

    if response.recommendations:
        lines += ["", "RECOMMENDED ACTIONS"]
        for i, r in enumerate(response.recommendations, 1):
            lines.append(f"{i}. {r.action} (impact {r.impact}, effort {r.effort})")

    plan = response.budget_plan
    if plan is not None and plan.expected_revenue_gain_brl > 0:
        lines += [
            "",
            f"BUDGET PLAN: ROAS {plan.current_total_roas:.2f} -> {plan.expected_total_roas:.2f}, "
            f"+{format_brl(plan.expected_revenue_gain_brl)} expected (confidence {plan.confidence:.0%})",
        ]
        for a in plan.allocations:
            if a.delta:
                lines.append(f"- {a.entity_name}: {format_brl(a.current_budget)} -> {format_brl(a.recommended_budget)}")
    return "\n".join(lines)
