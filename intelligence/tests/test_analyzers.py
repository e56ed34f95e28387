import sys
from pathlib import Path
ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

import pytest

from intelligence.engine.analyzers import ANALYZERS
from intelligence.engine.analyzers.composition import analyze_composition
from intelligence.engine.analyzers.demographic import analyze_demographics
from intelligence.engine.analyzers.device import analyze_devices
from intelligence.engine.analyzers.efficiency import analyze_efficiency
from intelligence.engine.analyzers.geographic import analyze_geographic
from intelligence.engine.analyzers.opportunity import analyze_opportunities
from intelligence.engine.analyzers.planning_gap import analyze_planning_gap, gap_pct
from intelligence.engine.analyzers.risk import analyze_risks
from intelligence.engine.analyzers.trends import analyze_trends
from intelligence.engine.engine import run_analyzers


def _by_id(findings):
    return {f.id: f for f in findings}


@pytest.mark.parametrize("name,analyzer", ANALYZERS)
def test_empty_cube_yields_no_findings(ctx, make_cube, name, analyzer):
    assert analyzer(ctx, make_cube()) == []


def test_analyzer_order_is_fixed():
    assert [name for name, _ in ANALYZERS] == [
        "efficiency", "opportunity", "risk", "device", "demographic", "geographic", "composition", "trend", "planning_gap",
    ]


def test_run_analyzers_ids_unique_and_impacts_consistent(ctx, cube):
    findings = run_analyzers(ctx, cube)
    ids = [f.id for f in findings]
    assert len(ids) == len(set(ids))
    for f in findings:
        assert f.id.count("/") >= 2
        if f.financial_impact is not None:
            fi = f.financial_impact
            assert fi.net_impact_brl >= 0
            assert round(fi.gross_impact_brl - fi.cost_brl, 2) == fi.net_impact_brl


def test_finding_ids_are_stable_across_runs(ctx, cube):
    first = [f.id for f in run_analyzers(ctx, cube)]
    second = [f.id for f in run_analyzers(ctx, cube)]
    assert first == second


# ----- efficiency -----
def test_efficiency_pause_scenario(ctx, make_cube):
    cube = make_cube(account={"cost": 1000, "revenue": 4000, "conversions": 10, "clicks": 400, "impressions": 9000})
    findings = _by_id(analyze_efficiency(ctx, cube))
    f = findings["efficiency/account-below-pause/account"]
    assert f.severity == "danger"
    assert f.category == "efficiency"
    assert f.constraint == "margin"
    # ROAS 4 against the pause floor of 5 on R$ 1.000
    assert f.financial_impact.net_impact_brl == 1000


def test_efficiency_healthy_account_has_no_pause_finding(ctx, make_cube):
    cube = make_cube(account={"cost": 1000, "revenue": 9000, "conversions": 30})
    ids = {f.id for f in analyze_efficiency(ctx, cube)}
    assert "efficiency/account-below-pause/account" not in ids


def test_efficiency_on_sample(ctx, cube):
    findings = _by_id(analyze_efficiency(ctx, cube))
    assert findings["efficiency/zero-conversion-campaigns/campaigns"].severity == "danger"
    assert findings["efficiency/zero-conversion-campaigns/campaigns"].financial_impact.net_impact_brl == 800
    assert findings["efficiency/zero-conversion-skus/skus"].severity == "warning"
    assert "efficiency/low-roas-campaigns/campaigns" in findings
    assert "efficiency/high-cpa-skus/skus" in findings
    assert "efficiency/budget-in-low-roas-skus/skus" in findings


def test_efficiency_small_spend_without_conversions_is_ignored(ctx, make_cube):
    cube = make_cube(campaigns=[
        {"campaign_id": "x", "campaign_name": "Tiny", "cost": 150, "conversions": 0, "revenue": 0},
    ])
    assert analyze_efficiency(ctx, cube) == []


# ----- opportunity -----
def test_opportunity_escalate_skus_on_sample(ctx, cube):
    findings = _by_id(analyze_opportunities(ctx, cube))
    f = findings["opportunity/escalate-skus/skus"]
    assert f.severity == "success"
    # 20% on R$ 24.000 of escalate revenue
    assert f.financial_impact.net_impact_brl == 4800


def test_opportunity_star_sku_and_growth(ctx, make_cube):
    cube = make_cube(
        account={"cost": 2000, "revenue": 18000, "conversions": 40},
        skus=[
            {"sku": "A", "name": "Star", "cost": 100, "revenue": 1000, "conversions": 5},
            {"sku": "B", "name": "Mid", "cost": 1000, "revenue": 3000, "conversions": 10},
            {"sku": "C", "name": "Other", "cost": 1000, "revenue": 3000, "conversions": 10},
        ],
    )
    findings = _by_id(analyze_opportunities(ctx, cube))
    star = findings["opportunity/underinvested-skus/a"]
    assert star.constraint == "budget"
    assert star.financial_impact.net_impact_brl > 0
    assert "opportunity/growth-headroom/account" in findings


# ----- risk -----
def test_risk_on_sample(ctx, cube):
    findings = _by_id(analyze_risks(ctx, cube))
    assert set(findings) == {
        "risk/pause-skus/skus",
        "risk/bounce/site",
        "risk/cart-abandonment/site",
        "risk/sku-concentration/vm-01",
        "risk/funnel-leak/add-to-cart",
    }
    assert all(f.severity == "warning" for f in findings.values())
    assert findings["risk/cart-abandonment/site"].financial_impact.net_impact_brl == 33750
    assert findings["risk/sku-concentration/vm-01"].constraint is None


def test_risk_bounce_escalates_to_danger(ctx, make_cube):
    cube = make_cube(web={"sessions": 1000, "purchases": 10, "purchase_revenue": 3000, "bounce_rate": 0.70})
    f = _by_id(analyze_risks(ctx, cube))["risk/bounce/site"]
    assert f.severity == "danger"
    assert f.constraint == "traffic"


# ----- device -----
def test_device_low_roas_and_zero_conversions(ctx, make_cube):
    cube = make_cube(devices=[
        {"device": "mobile", "cost": 1000, "conversions": 5, "revenue": 1000},
        {"device": "desktop", "cost": 1000, "conversions": 20, "revenue": 8000},
        {"device": "tablet", "cost": 200, "conversions": 0, "revenue": 0},
    ])
    findings = _by_id(analyze_devices(ctx, cube))
    mobile = findings["device/low-roas/mobile"]
    assert mobile.severity == "danger"
    # 30% of mobile spend moved from ROAS 1 to ROAS 8
    assert mobile.financial_impact.net_impact_brl == 2100
    assert "device/zero-conversions/tablet" in findings
    assert "device/low-roas/desktop" not in findings


def test_device_opportunity_small_share_high_roas(ctx, make_cube):
    cube = make_cube(devices=[
        {"device": "desktop", "cost": 1000, "conversions": 10, "revenue": 3000},
        {"device": "mobile", "cost": 1000, "conversions": 10, "revenue": 3000},
        {"device": "tablet", "cost": 200, "conversions": 10, "revenue": 2000},
    ])
    findings = _by_id(analyze_devices(ctx, cube))
    f = findings["device/opportunity/tablet"]
    assert f.severity == "success"
    assert f.category == "opportunity"
    assert f.constraint == "budget"
    # underinvestment measured against the average device spend
    avg_spend = (1000 + 1000 + 200) / 3
    delta = avg_spend - 200
    assert f.financial_impact.net_impact_brl == pytest.approx(delta * 10 - delta, abs=0.01)
    assert "device/opportunity/desktop" not in findings


def test_device_shift_fraction_comes_from_rules(ctx, make_cube):
    cube = make_cube(devices=[
        {"device": "mobile", "cost": 1000, "conversions": 5, "revenue": 1000},
        {"device": "desktop", "cost": 1000, "conversions": 20, "revenue": 8000},
    ])
    ctx.thresholds["device"]["underperform_shift_pct"] = 50.0
    mobile = _by_id(analyze_devices(ctx, cube))["device/low-roas/mobile"]
    # 50% of mobile spend moved from ROAS 1 to ROAS 8
    assert mobile.financial_impact.net_impact_brl == 3500
    assert "-50%" in mobile.recommendations[0].steps[0]


def test_device_sample_is_quiet(ctx, cube):
    # mobile and tablet stay above half of the desktop ROAS
    assert analyze_devices(ctx, cube) == []


# ----- demographic -----
def test_demographic_gender_gap_on_sample(ctx, cube):
    findings = _by_id(analyze_demographics(ctx, cube))
    f = findings["demographic/gender-gap/male"]
    assert f.severity == "warning"
    assert f.metrics["entity"] == "Masculino -> Feminino"


def test_demographic_expensive_age_band(ctx, make_cube):
    cube = make_cube(demographics=[
        {"segment": "AGE_RANGE_25_34", "type": "age", "cost": 1000, "conversions": 50, "revenue": 6000},
        {"segment": "AGE_RANGE_35_44", "type": "age", "cost": 1000, "conversions": 40, "revenue": 5000},
        {"segment": "AGE_RANGE_65_UP", "type": "age", "cost": 1000, "conversions": 5, "revenue": 600},
    ])
    findings = _by_id(analyze_demographics(ctx, cube))
    f = findings["demographic/age-high-cpa/age-range-65-up"]
    assert f.metrics["entity"] == "65+"
    assert f.financial_impact.net_impact_brl > 0


# ----- geographic -----
def test_geographic_concentration_on_sample(ctx, cube):
    findings = _by_id(analyze_geographic(ctx, cube))
    assert list(findings) == ["geographic/concentration/sp"]
    assert findings["geographic/concentration/sp"].category == "risk"


def test_geographic_single_region_is_skipped(ctx, make_cube):
    cube = make_cube(geographic=[{"region": "SP", "cost": 1000, "conversions": 10, "revenue": 5000}])
    assert analyze_geographic(ctx, cube) == []


# ----- composition -----
def test_composition_on_sample(ctx, cube):
    findings = _by_id(analyze_composition(ctx, cube))
    assert findings["composition/paid-dependency/channels"].severity == "warning"
    best = findings["composition/best-channel/organic-search"]
    assert best.constraint == "traffic"


def test_composition_strong_organic_and_direct(ctx, make_cube):
    cube = make_cube(channels=[
        {"channel": "Organic Search", "sessions": 5000, "conversions": 40},
        {"channel": "Direct", "sessions": 3000, "conversions": 20},
        {"channel": "Paid Search", "sessions": 2000, "conversions": 10},
    ])
    ids = {f.id for f in analyze_composition(ctx, cube)}
    assert "composition/organic-strong/channels" in ids
    assert "composition/direct-strong/channels" in ids
    assert "composition/paid-dependency/channels" not in ids


# ----- trends -----
def test_trends_on_sample(ctx, cube):
    findings = _by_id(analyze_trends(ctx, cube))
    assert findings["trend/revenue-declining/account"].severity == "warning"
    assert "trend/sku-declining/bl-02" in findings


def test_trends_improving_revenue(ctx, make_cube):
    history = {"account": [
        {"date": f"2025-03-{d:02d}", "revenue": 1000 + 100 * d} for d in range(1, 15)
    ]}
    findings = _by_id(analyze_trends(ctx, make_cube(history=history)))
    f = findings["trend/revenue-improving/account"]
    assert f.severity == "success"
    assert f.financial_impact.net_impact_brl == 0


# ----- planning gap -----
def test_gap_pct():
    assert gap_pct(90, 100) == pytest.approx(-10)
    assert gap_pct(5, 0) == 0.0


def test_planning_gap_on_sample(ctx, cube):
    findings = _by_id(analyze_planning_gap(ctx, cube))
    # 45.000 against 120.000 x 15/31 pro-rated
    assert findings["planning_gap/revenue/account"].severity == "danger"
    assert findings["planning_gap/revenue/account"].constraint == "traffic"
    # ROAS 4,5 against 6
    assert findings["planning_gap/roas/account"].severity == "danger"
    assert findings["planning_gap/roas/account"].financial_impact.net_impact_brl == 15000
    assert findings["planning_gap/sessions/site"].severity == "warning"
    # spend is within 20% of its pace
    assert "planning_gap/budget/account" not in findings


def test_planning_gap_ahead_of_plan_is_success(ctx, make_cube):
    cube = make_cube(
        account={"cost": 1000, "revenue": 80000, "conversions": 200},
        planning={"revenue": 100000},
    )
    f = _by_id(analyze_planning_gap(ctx, cube))["planning_gap/revenue/account"]
    assert f.severity == "success"
    assert f.constraint is None
    assert f.recommendations == []


def test_threshold_override_changes_analyzer_output(ctx, make_cube):
    cube = make_cube(web={"sessions": 1000, "purchases": 10, "purchase_revenue": 3000, "bounce_rate": 0.60})
    assert "risk/bounce/site" in _by_id(analyze_risks(ctx, cube))
    ctx.thresholds["risk"]["bounce_rate_above"] = 0.65
    assert "risk/bounce/site" not in _by_id(analyze_risks(ctx, cube))


def test_geographic_waste_cut_follows_rules(ctx, make_cube):
    cube = make_cube(geographic=[
        {"region": "SP", "cost": 1000, "conversions": 40, "revenue": 10000},
        {"region": "BA", "cost": 1000, "conversions": 5, "revenue": 2000},
    ])
    waste = _by_id(analyze_geographic(ctx, cube))["geographic/waste/ba"]
    assert waste.financial_impact.net_impact_brl == 500
    ctx.thresholds["geographic"]["waste_cut_ratio"] = 0.25
    waste = _by_id(analyze_geographic(ctx, cube))["geographic/waste/ba"]
    assert waste.financial_impact.net_impact_brl == 250
    assert "by 25%" in waste.recommendations[0].action


def test_risk_pause_floor_follows_rules(ctx, make_cube):
    cube = make_cube(skus=[{"sku": "A", "cost": 400, "conversions": 2, "revenue": 800}])
    assert "risk/pause-skus/skus" not in _by_id(analyze_risks(ctx, cube))
    ctx.thresholds["risk"]["pause_min_spend"] = 300.0
    assert "risk/pause-skus/skus" in _by_id(analyze_risks(ctx, cube))
