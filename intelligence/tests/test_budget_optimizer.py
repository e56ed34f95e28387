import sys
from pathlib import Path
ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

import pytest

from intelligence.engine.budget_optimizer import budget_inputs_from_cube, optimize_budget
from intelligence.engine.errors import BadInputError
from intelligence.engine.models import BudgetEntity


def _entities(*pairs):
    return [BudgetEntity(entity=f"e{i}", current_budget=b, current_roas=r) for i, (b, r) in enumerate(pairs)]


def _assert_plan_invariants(plan, entities):
    total = round(sum(e.current_budget for e in entities), 2)
    assert round(sum(a.recommended_budget for a in plan.allocations), 2) == total
    assert plan.total_budget == total
    assert plan.expected_total_roas >= plan.current_total_roas
    assert plan.expected_revenue_gain_brl >= 0
    assert all(a.recommended_budget >= 0 for a in plan.allocations)


def test_two_entities_move_budget_to_higher_roas():
    entities = _entities((1000, 2), (1000, 8))
    plan = optimize_budget(entities)
    _assert_plan_invariants(plan, entities)
    low, high = plan.allocations
    # source cut stops at the 50% cap before the marginal ROAS falls to 2
    assert low.recommended_budget == 500
    assert high.recommended_budget == 1500
    assert low.delta == -500
    assert plan.current_total_roas == 5.0
    assert plan.expected_total_roas > 5.0
    assert low.rationale.startswith("Reduce")
    assert high.rationale.startswith("Increase")


@pytest.mark.parametrize("pairs", [
    [(1000, 2), (1000, 8)],
    [(3000, 8), (2500, 3), (2000, 3), (1500, 4), (600, 2.5), (400, 0)],
    [(100, 1), (5000, 4), (250, 12), (80, 30)],
    [(0, 5), (1000, 2), (1000, 6)],
])
def test_conservation_and_no_worse_roas(pairs):
    entities = _entities(*pairs)
    plan = optimize_budget(entities)
    _assert_plan_invariants(plan, entities)
    for e, a in zip(entities, plan.allocations):
        assert a.recommended_budget >= e.current_budget * 0.5 - 0.05
        assert a.recommended_budget <= e.current_budget * 2 + 0.05


def test_single_entity_is_identity():
    entities = _entities((1000, 3))
    plan = optimize_budget(entities)
    assert plan.allocations[0].recommended_budget == 1000
    assert plan.expected_revenue_gain_brl == 0
    assert plan.expected_total_roas == plan.current_total_roas


def test_equal_roas_is_identity():
    entities = _entities((1000, 5), (500, 5), (250, 5))
    plan = optimize_budget(entities)
    assert [a.delta for a in plan.allocations] == [0, 0, 0]
    assert all(a.rationale == "Keep current budget" for a in plan.allocations)


def test_zero_total_is_identity():
    plan = optimize_budget(_entities((0, 5), (0, 2)))
    assert plan.total_budget == 0
    assert plan.expected_total_roas == 0


def test_total_budget_must_match_current_total():
    entities = _entities((1000, 2), (1000, 8))
    optimize_budget(entities, total_budget=2000)
    with pytest.raises(BadInputError) as exc:
        optimize_budget(entities, total_budget=3000)
    assert exc.value.field == "total_budget"


def test_plan_lists_assumptions():
    plan = optimize_budget(_entities((1000, 2), (1000, 8)))
    assert len(plan.assumptions) == 4
    assert plan.confidence == 0.3


def test_budget_inputs_from_cube(cube):
    entities = budget_inputs_from_cube(cube)
    assert [e.entity for e in entities] == ["VM-01", "BL-02", "CA-03", "SA-04", "CM-05", "CI-06"]
    assert entities[0].entity_name == "Vestido Midi"
    assert entities[0].current_roas == 8.0
    plan = optimize_budget(entities)
    _assert_plan_invariants(plan, entities)
