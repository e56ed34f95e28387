"""
Pattern analyzers. Each is a pure function (ctx, cube) -> list[CognitiveFinding], run in this fixed order.
An analyzer never sees another's output; an empty dimension yields [].
"""
from __future__ import annotations

from typing import Callable

from ..models import AnalysisContext, CognitiveFinding, DataCube
from .composition import analyze_composition
from .demographic import analyze_demographics
from .device import analyze_devices
from .efficiency import analyze_efficiency
from .geographic import analyze_geographic
from .opportunity import analyze_opportunities
from .planning_gap import analyze_planning_gap
from .risk import analyze_risks
from .trends import analyze_trends

Analyzer = Callable[[AnalysisContext, DataCube], list[CognitiveFinding]]

ANALYZERS: tuple[tuple[str, Analyzer], ...] = (
    ("efficiency", analyze_efficiency),
    ("opportunity", analyze_opportunities),
    ("risk", analyze_risks),
    ("device", analyze_devices),
    ("demographic", analyze_demographics),
    ("geographic", analyze_geographic),
    ("composition", analyze_composition),
    ("trend", analyze_trends),
    ("planning_gap", analyze_planning_gap),
)

__all__ = ["ANALYZERS", "Analyzer"]
