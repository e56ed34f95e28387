import sys
from pathlib import Path
ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

import pytest

from intelligence.engine.errors import InvariantViolation
from intelligence.engine.financial_impact import (
    check_impact,
    quantify_bounce,
    quantify_budget_reallocation,
    quantify_cart_abandonment,
    quantify_concentration_risk,
    quantify_cost_saving,
    quantify_overspend,
    quantify_pause,
    quantify_revenue_gap,
    quantify_revenue_uplift,
    quantify_roas_shortfall,
    quantify_underinvestment,
    quantify_unit_gain,
    quantify_wasted_spend,
    zero_impact,
)
from intelligence.engine.models import FinancialImpact


def _all_quantifiers():
    return [
        quantify_wasted_spend(0),
        quantify_wasted_spend(1234.567),
        quantify_underinvestment(100, 500, 6),
        quantify_underinvestment(500, 100, 6),
        quantify_underinvestment(100, 500, 0.5),
        quantify_budget_reallocation(300, 2, 8),
        quantify_budget_reallocation(300, 8, 2),
        quantify_budget_reallocation(0, 2, 8),
        quantify_revenue_uplift(10000, 10, "uplift"),
        quantify_revenue_uplift(0, 10, "uplift"),
        quantify_cost_saving(120, 80, 10, "cpa"),
        quantify_cost_saving(60, 80, 10, "cpa"),
        quantify_revenue_gap(100000, 80000),
        quantify_revenue_gap(100000, 120000),
        quantify_pause(1000, 2000, 30),
        quantify_pause(1000, 10000, 30),
        quantify_concentration_risk(50000, 60, "SKU A"),
        quantify_bounce(20000, 0.62, 0.45, 0.75, 300),
        quantify_bounce(20000, 0.30, 0.45, 0.75, 300),
        quantify_cart_abandonment(150, 80, 65, 300),
        quantify_cart_abandonment(0, 80, 65, 300),
        quantify_cart_abandonment(10, 100, 65, 300),
        quantify_roas_shortfall(1000, 4, 5),
        quantify_roas_shortfall(1000, 6, 5),
        quantify_unit_gain(12.5, 300, "orders"),
        quantify_overspend(1200, 1000),
        quantify_overspend(800, 1000),
    ]


@pytest.mark.parametrize("impact", _all_quantifiers())
def test_net_impact_non_negative_and_exact(impact):
    assert impact.net_impact_brl >= 0
    assert impact.gross_impact_brl >= 0
    assert impact.cost_brl >= 0
    assert round(impact.gross_impact_brl - impact.cost_brl, 2) == impact.net_impact_brl
    assert 0 <= impact.confidence <= 1
    assert impact.calculation


def test_wasted_spend_is_fully_recoverable():
    impact = quantify_wasted_spend(800)
    assert impact.gross_impact_brl == 800
    assert impact.net_impact_brl == 800
    assert "R$ 800,00" in impact.calculation


def test_reallocation_gain():
    impact = quantify_budget_reallocation(300, 2, 8)
    assert impact.gross_impact_brl == 2400
    assert impact.cost_brl == 600
    assert impact.net_impact_brl == 1800


def test_reallocation_to_worse_destination_is_zero():
    assert quantify_budget_reallocation(300, 8, 2).net_impact_brl == 0


def test_underinvestment_that_does_not_pay_for_itself_is_zero():
    # ROAS below 1: extra spend returns less than it costs
    assert quantify_underinvestment(100, 500, 0.5).net_impact_brl == 0


def test_pause_nets_lost_profit():
    impact = quantify_pause(1000, 2000, 30)
    assert impact.gross_impact_brl == 1000
    assert impact.cost_brl == 600
    assert impact.net_impact_brl == 400


def test_roas_shortfall():
    assert quantify_roas_shortfall(1000, 4, 5).net_impact_brl == 1000


def test_cart_abandonment_recovery():
    # 150 purchases at 80% abandonment -> 750 carts; 15 points back -> 112.5 orders x 300
    assert quantify_cart_abandonment(150, 80, 65, 300).net_impact_brl == 33750


def test_check_impact_rejects_broken_arithmetic():
    with pytest.raises(InvariantViolation):
        check_impact(FinancialImpact(gross_impact_brl=10, cost_brl=2, net_impact_brl=5, calculation="x"))
    with pytest.raises(InvariantViolation):
        check_impact(FinancialImpact(gross_impact_brl=0, cost_brl=5, net_impact_brl=-5, calculation="x"))
    check_impact(zero_impact("ok"))
