"""
Root-cause correlation: link a trigger finding to evidence findings through a table of causal patterns.
Matching is by finding-id prefix (analyzer/rule) plus a minimum trigger severity.
The first pattern that claims a finding wins; findings without a match pass through unchanged.
"""
from __future__ import annotations

import logging
from typing import Any

from .models import CognitiveFinding

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"success": 0, "warning": 1, "danger": 2}

CAUSAL_PATTERNS: list[dict[str, Any]] = [
    {
        "id": "budget-misallocation",
        "trigger": {"prefixes": ("planning_gap/revenue/", "planning_gap/roas/"), "min_severity": "warning"},
        "evidence": {"prefixes": (
            "efficiency/zero-conversion-campaigns/", "efficiency/low-roas-campaigns/", "efficiency/budget-in-low-roas-skus/",
        )},
        "root_cause": "Revenue is behind plan because part of the budget sits in SKUs and campaigns with poor return",
    },
    {
        "id": "traffic-quality",
        "trigger": {"prefixes": ("risk/bounce/",)},
        "evidence": {"prefixes": ("composition/paid-dependency/",)},
        "root_cause": "High bounce combined with paid-traffic dependency points at traffic quality",
    },
    {
        "id": "reallocation-opportunity",
        "trigger": {"prefixes": ("opportunity/underinvested-skus/", "opportunity/escalate-skus/")},
        "evidence": {"prefixes": (
            "efficiency/zero-conversion-", "efficiency/low-roas-campaigns/", "efficiency/high-cpa-skus/",
            "efficiency/budget-in-low-roas-skus/",
        )},
        "root_cause": "High-potential SKUs are under-funded while budget is wasted on inefficient ones",
    },
    {
        "id": "conversion-bottleneck",
        "trigger": {"prefixes": ("risk/cart-abandonment/", "risk/funnel-leak/")},
        "evidence": {"prefixes": ("planning_gap/revenue/", "planning_gap/conversion/")},
        "root_cause": "A conversion problem in the funnel is feeding the revenue gap against plan",
    },
    {
        "id": "device-inefficiency",
        "trigger": {"prefixes": ("device/low-roas/",)},
        "evidence": {"prefixes": ("efficiency/budget-in-low-roas-skus/", "efficiency/low-roas-campaigns/")},
        "root_cause": "Budget on a low-ROAS device is dragging overall efficiency down",
    },
    {
        "id": "geo-concentration",
        "trigger": {"prefixes": ("geographic/concentration/",)},
        "evidence": {"prefixes": ("risk/",)},
        "root_cause": "Geographic concentration amplifies the operation's other risks",
    },
]


def _matches(f: CognitiveFinding, side: dict[str, Any]) -> bool:
    if not f.id.startswith(tuple(side["prefixes"])):
        return False
    minimum = side.get("min_severity")
    return minimum is None or SEVERITY_ORDER[f.severity] >= SEVERITY_ORDER[minimum]


def correlate_findings(findings: list[CognitiveFinding]) -> list[CognitiveFinding]:
    """Return new findings with root_cause / related_finding_ids filled where a pattern matched."""
    links: dict[str, tuple[str, list[str]]] = {}
    for pattern in CAUSAL_PATTERNS:
        triggers = [f for f in findings if _matches(f, pattern["trigger"])]
        if not triggers:
            continue
        for trigger in triggers:
            evidence = [f for f in findings if f.id != trigger.id and _matches(f, pattern["evidence"])]
            if not evidence:
                continue
            links.setdefault(trigger.id, (pattern["root_cause"], [e.id for e in evidence]))
            for e in evidence:
                links.setdefault(e.id, (f"Related to: {trigger.title}", [trigger.id]))
    if links:
        logger.debug("correlation | linked=%s", len(links))
    out = []
    for f in findings:
        link = links.get(f.id)
        if link is None:
            out.append(f)
        else:
            out.append(f.model_copy(update={"root_cause": link[0], "related_finding_ids": list(link[1])}))
    return out
