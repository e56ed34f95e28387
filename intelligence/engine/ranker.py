"""
Recommendation ranking.
Quick wins are merged ahead of the other findings, recommendations are deduplicated on
their normalized action text (first occurrence wins), then stably sorted by
impact_rank + effort_rank so high-impact, low-effort actions come first.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from .models import CognitiveFinding, RankedRecommendation
from .thresholds import RANKER_RULES


def order_findings(
    findings: Sequence[CognitiveFinding],
    rules: Optional[Mapping[str, Any]] = None,
) -> list[CognitiveFinding]:
    """Danger first, then larger net impact; equal keys keep input order."""
    r = rules or RANKER_RULES
    return sorted(findings, key=lambda f: (r["severity_rank"][f.severity], -f.net_impact))


def select_quick_wins(findings: Sequence[CognitiveFinding], n: int = 3) -> list[CognitiveFinding]:
    """Non-success findings carrying a low-effort recommendation whose impact is not low."""
    wins = [
        f for f in findings
        if f.severity != "success"
        and any(rec.effort == "low" and rec.impact != "low" for rec in f.recommendations)
    ]
    return wins[:n]


def _normalize(action: str) -> str:
    return action.lower().strip()


def rank_recommendations(
    findings: Sequence[CognitiveFinding],
    quick_wins: Sequence[CognitiveFinding] = (),
    limit: int = 5,
    rules: Optional[Mapping[str, Any]] = None,
) -> list[RankedRecommendation]:
    r = rules or RANKER_RULES
    impact_rank, effort_rank = r["impact_rank"], r["effort_rank"]
    seen: set[str] = set()
    merged: list[RankedRecommendation] = []
    for f in list(quick_wins) + list(findings):
        for rec in f.recommendations:
            key = _normalize(rec.action)
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(RankedRecommendation(
                finding_id=f.id,
                severity=f.severity,
                action=rec.action,
                impact=rec.impact,
                effort=rec.effort,
                steps=list(rec.steps),
                score=impact_rank[rec.impact] + effort_rank[rec.effort],
                net_impact_brl=f.net_impact,
            ))
    # sorted() is stable: equal scores keep merge order
    merged = sorted(merged, key=lambda x: x.score)
    return merged[:limit]
