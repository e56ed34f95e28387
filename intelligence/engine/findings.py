"""Finding construction shared by all analyzers. Ids are a plain template: analyzer/rule/entity."""
from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from .models import CognitiveFinding, FinancialImpact, Recommendation

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slug(value: str) -> str:
    s = _SLUG_RE.sub("-", str(value).lower()).strip("-")
    return s or "na"


def finding_id(analyzer: str, rule: str, entity: str = "account") -> str:
    """Same analyzer + rule + entity always yields the same id."""
    return f"{analyzer}/{rule}/{slug(entity)}"


def rec(action: str, impact: str, effort: str, steps: Iterable[str] = ()) -> Recommendation:
    return Recommendation(action=action, impact=impact, effort=effort, steps=tuple(steps))


def make_finding(
    analyzer: str,
    rule: str,
    entity: str,
    *,
    category: str,
    severity: str,
    title: str,
    description: str,
    metrics: Optional[dict[str, Any]] = None,
    recommendations: Iterable[Recommendation] = (),
    financial_impact: Optional[FinancialImpact] = None,
    constraint: Optional[str] = None,
) -> CognitiveFinding:
    return CognitiveFinding(
        id=finding_id(analyzer, rule, entity),
        category=category,
        severity=severity,
        title=title,
        description=description,
        metrics=metrics or {},
        recommendations=list(recommendations),
        financial_impact=financial_impact,
        constraint=constraint,
    )
