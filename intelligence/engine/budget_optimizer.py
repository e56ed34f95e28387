"""
Budget optimizer: redistribute a fixed total across entities (SKUs or campaigns) toward higher ROAS.
Greedy, step by step: take budget from the lowest-ROAS below-average entity and give it to the
above-average entity with the best marginal ROAS. Marginal ROAS decays with scale:

    marginal = roas * (1 - elasticity) / (1 + added / current)

while the source loses its average ROAS on each unit removed. Stops when the best marginal gain
no longer beats the source loss or every source/destination cap is hit.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from .errors import BadInputError
from .formatting import format_brl, format_roas
from .models import BudgetAllocation, BudgetEntity, BudgetPlan, DataCube
from .thresholds import BUDGET_RULES

logger = logging.getLogger(__name__)


def _assumptions(r: Mapping[str, Any]) -> list[str]:
    return [
        f"Marginal ROAS on added budget decays by {r['elasticity'] * 100:g}% and keeps falling as spend grows",
        "Budget removed from an entity loses its average ROAS",
        f"No entity is cut by more than {r['max_cut_pct']:g}% or raised by more than {r['max_increase_pct']:g}%",
        "Total budget is redistributed, never expanded",
    ]


def _blended_roas(budgets: np.ndarray, roas: np.ndarray) -> float:
    total = float(budgets.sum())
    return float((budgets * roas).sum() / total) if total > 0 else 0.0


def _rationale(e: BudgetEntity, delta: float, avg_roas: float) -> str:
    if delta > 0:
        return f"Increase {format_brl(delta)}: ROAS {format_roas(e.current_roas)} above the {format_roas(avg_roas)} average"
    if delta < 0:
        return f"Reduce {format_brl(-delta)}: ROAS {format_roas(e.current_roas)} below the {format_roas(avg_roas)} average"
    return "Keep current budget"


def _plan(
    entities: Sequence[BudgetEntity],
    recommended: np.ndarray,
    gain: float,
    r: Mapping[str, Any],
) -> BudgetPlan:
    current = np.array([e.current_budget for e in entities], dtype=float)
    roas = np.array([e.current_roas for e in entities], dtype=float)
    total = round(float(current.sum()), 2)
    rounded = np.round(recommended, 2)
    if len(rounded):
        # rounding residual goes to the largest allocation so the total is conserved to the cent
        residual = round(total - float(rounded.sum()), 2)
        rounded[int(np.argmax(rounded))] += residual
    current_roas = _blended_roas(current, roas)
    current_revenue = float((current * roas).sum())
    gain = round(max(gain, 0.0), 2)
    allocations = [
        BudgetAllocation(
            entity=e.entity,
            entity_name=e.entity_name or e.entity,
            current_budget=round(e.current_budget, 2),
            recommended_budget=round(float(rounded[i]), 2),
            delta=round(float(rounded[i]) - e.current_budget, 2),
            current_roas=round(e.current_roas, 2),
            rationale=_rationale(e, round(float(rounded[i]) - e.current_budget, 2), current_roas),
        )
        for i, e in enumerate(entities)
    ]
    return BudgetPlan(
        total_budget=total,
        current_total_roas=round(current_roas, 2),
        expected_total_roas=round((current_revenue + gain) / total, 2) if total > 0 else 0.0,
        expected_revenue_gain_brl=gain,
        confidence=r["confidence"],
        allocations=allocations,
        assumptions=_assumptions(r),
    )


def optimize_budget(
    entities: Sequence[BudgetEntity],
    total_budget: Optional[float] = None,
    rules: Optional[Mapping[str, Any]] = None,
) -> BudgetPlan:
    """
    Returns a plan whose recommended budgets sum to the current total and whose expected
    blended ROAS is never below the current one. Degenerate input (fewer than min_entities,
    zero total, equal ROAS, no improving move) returns the identity plan.
    """
    r = rules or BUDGET_RULES
    entities = list(entities)
    current = np.array([e.current_budget for e in entities], dtype=float)
    total = float(current.sum())
    if total_budget is not None and abs(total_budget - total) > 0.01:
        raise BadInputError(
            f"total_budget {total_budget} differs from the sum of current budgets {round(total, 2)}; "
            "the optimizer only redistributes",
            field="total_budget",
        )
    if len(entities) < r["min_entities"] or total <= 0:
        return _plan(entities, current, 0.0, r)

    roas = np.array([e.current_roas for e in entities], dtype=float)
    avg = _blended_roas(current, roas)
    is_source = (roas < avg) & (current > 0)
    is_dest = (roas > avg) & (current > 0)
    cut_cap = current * r["max_cut_pct"] / 100
    add_cap = current * r["max_increase_pct"] / 100
    step = total * r["step_pct"] / 100
    decay = 1 - r["elasticity"]

    cut = np.zeros(len(entities))
    added = np.zeros(len(entities))
    gain = 0.0
    steps = 0
    while True:
        src_open = is_source & (cut_cap - cut > 1e-9)
        dst_open = is_dest & (add_cap - added > 1e-9)
        if not src_open.any() or not dst_open.any():
            break
        # worst source first; ties resolve to the earlier entity
        src = int(np.argmin(np.where(src_open, roas, np.inf)))
        marginal = np.where(dst_open, roas * decay / (1 + added / np.where(current > 0, current, 1)), -np.inf)
        dst = int(np.argmax(marginal))
        if marginal[dst] <= roas[src]:
            break
        amount = min(step, cut_cap[src] - cut[src], add_cap[dst] - added[dst])
        if amount <= 0:
            break
        gain += amount * (float(marginal[dst]) - float(roas[src]))
        cut[src] += amount
        added[dst] += amount
        steps += 1

    logger.debug("budget optimizer | entities=%s steps=%s gain=%.2f", len(entities), steps, gain)
    if steps == 0:
        return _plan(entities, current, 0.0, r)
    return _plan(entities, current - cut + added, gain, r)


def budget_inputs_from_cube(cube: DataCube) -> list[BudgetEntity]:
    """SKUs with spend become optimizer entities (budget = period spend)."""
    return [
        BudgetEntity(entity=s.sku, entity_name=s.name, current_budget=s.cost, current_roas=s.roas)
        for s in cube.skus
        if s.cost > 0
    ]
