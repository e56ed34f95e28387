import math
import sys
from datetime import date
from pathlib import Path
ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

import pytest

from intelligence.engine.errors import BadInputError
from intelligence.engine.normalizer import (
    build_data_cube,
    build_meta,
    derive_status,
    funnel_dropoffs,
    safe_div,
    share_pct,
    shares,
)


def test_safe_div_never_raises_or_returns_non_finite():
    assert safe_div(10, 0) == 0.0
    assert safe_div(0, 0) == 0.0
    assert safe_div(float("inf"), 1) == 0.0
    assert safe_div(10, 4) == 2.5


@pytest.mark.parametrize("cost,conversions,clicks,impressions", [
    (0, 0, 0, 0),
    (100, 0, 0, 0),
    (0, 5, 10, 0),
    (250, 3, 40, 1000),
])
def test_ratio_safety(make_cube, cost, conversions, clicks, impressions):
    cube = make_cube(account={"cost": cost, "conversions": conversions, "clicks": clicks, "impressions": impressions, "revenue": 300})
    acc = cube.account
    for value in (acc.roas, acc.cpa, acc.ctr, acc.conversion_rate):
        assert math.isfinite(value)
        assert value >= 0


def test_revenue_shares_sum_to_100(cube):
    for dimension in (cube.skus, cube.devices, cube.geographic):
        assert abs(sum(s.revenue_share for s in dimension) - 100) <= 0.1
    ages = [s for s in cube.demographics if s.type == "age"]
    genders = [s for s in cube.demographics if s.type == "gender"]
    assert abs(sum(s.revenue_share for s in ages) - 100) <= 0.1
    assert abs(sum(s.revenue_share for s in genders) - 100) <= 0.1


@pytest.mark.parametrize("n", [3, 7, 27, 30, 60, 90])
def test_many_regions_shares_still_sum_to_100(n):
    cube = build_data_cube(
        "t", date(2025, 3, 1), date(2025, 3, 15),
        geographic=[{"region": f"R{i:03d}", "cost": 100, "revenue": 1000} for i in range(n)],
    )
    assert len(cube.geographic) == n
    assert abs(sum(g.revenue_share for g in cube.geographic) - 100) <= 0.1
    assert abs(sum(g.spend_share for g in cube.geographic) - 100) <= 0.1


def test_shares_apportion_the_rounding_remainder():
    assert shares([1, 1, 1]) == [33.34, 33.33, 33.33]
    assert shares([0, 0]) == [0.0, 0.0]
    assert shares([]) == []
    out = shares([7, 13, 29, 51, 3, 11])
    assert round(sum(out), 2) == 100.0
    assert all(abs(s - share_pct(v, 114)) < 0.011 for s, v in zip(out, [7, 13, 29, 51, 3, 11]))


def test_share_pct_zero_total():
    assert share_pct(5, 0) == 0.0
    assert share_pct(1, 3) == 33.33


def test_pause_scenario_account_status(make_cube):
    cube = make_cube(account={"cost": 1000, "revenue": 4000, "conversions": 10, "clicks": 400, "impressions": 9000})
    assert cube.account.roas == 4.0
    assert cube.account.cpa == 100.0
    assert cube.account.status_tag == "pause"


def test_derive_status_table():
    assert derive_status(4, 50, 10) == "pause"
    assert derive_status(8, 100, 10) == "pause"
    assert derive_status(0, 0, 0) == "pause"
    assert derive_status(6, 50, 10) == "hold"
    assert derive_status(8, 50, 10, margin_pct=20, stock=100) == "hold"
    assert derive_status(8, 50, 10, margin_pct=30, stock=10) == "hold"
    assert derive_status(8, 50, 10, margin_pct=30, stock=50) == "escalate"
    # unknown stock skips the stock check
    assert derive_status(8, 50, 10) == "escalate"


def test_skus_sorted_by_revenue_and_extras_applied(cube):
    assert [s.sku for s in cube.skus][:2] == ["VM-01", "BL-02"]
    vm = cube.skus[0]
    assert vm.margin_pct == 40
    assert vm.stock == 120
    assert vm.gross_profit == 9600.0
    assert vm.status_tag == "escalate"
    # no extras: default margin and zero stock
    cinto = next(s for s in cube.skus if s.sku == "CI-06")
    assert cinto.margin_pct == 30
    assert cinto.stock == 0
    assert cinto.status_tag == "pause"


def test_rows_for_the_same_key_are_aggregated(make_cube):
    cube = make_cube(skus=[
        {"sku": "A", "cost": 100, "revenue": 500, "conversions": 2},
        {"sku": "A", "cost": 50, "revenue": 250, "conversions": 1},
        {"sku": "B", "cost": 10, "revenue": 0, "conversions": 0},
    ])
    a = next(s for s in cube.skus if s.sku == "A")
    assert a.cost == 150
    assert a.revenue == 750
    assert a.roas == 5.0


def test_device_keys_and_labels(cube):
    keys = {d.key: d.label for d in cube.devices}
    assert keys == {"MOBILE": "Mobile", "DESKTOP": "Desktop", "TABLET": "Tablet"}


def test_unknown_segment_key_passes_through(make_cube):
    cube = make_cube(devices=[{"device": "watch", "cost": 10, "revenue": 20}])
    assert cube.devices[0].key == "WATCH"
    assert cube.devices[0].label == "WATCH"


def test_web_summary_rates(cube):
    web = cube.web
    assert web.conversion_rate == 0.75
    assert web.avg_order_value == 300.0
    assert web.bounce_rate == 0.62


def test_funnel_dropoffs():
    assert funnel_dropoffs([100, 50, 0, 10]) == [0.0, 50.0, 100.0, 0.0]
    assert funnel_dropoffs([]) == []


def test_partial_input_is_not_an_error(make_cube):
    cube = make_cube()
    assert cube.account is None
    assert cube.skus == ()
    assert cube.web is None
    assert cube.planning.revenue is None
    assert cube.trends.account_revenue is None


def test_meta_calendar_facts():
    meta = build_meta("t", date(2025, 2, 1), date(2025, 2, 10))
    assert meta.days_in_period == 10
    assert meta.day_of_month == 10
    assert meta.days_in_month == 28


def test_trends_built_from_history(cube):
    assert cube.trends.account_revenue.direction == "declining"
    assert cube.trends.sku("BL-02").direction == "declining"
    assert cube.trends.sku("VM-01") is None
    assert set(type(cube.trends).model_fields) == {"account_revenue", "skus"}


@pytest.mark.parametrize("kwargs,field", [
    ({"skus": [{"name": "no key", "cost": 1}]}, "skus.sku"),
    ({"skus": [{"sku": "A", "cost": -5}]}, "skus.cost"),
    ({"devices": [{"device": "mobile", "cost": "abc"}]}, "devices.cost"),
    ({"demographics": [{"segment": "X", "type": "income", "cost": 1}]}, "demographics.type"),
    ({"skus": "not records"}, "skus"),
    ({"planning": {"revenue": "lots"}}, "planning"),
])
def test_bad_input_raises(make_cube, kwargs, field):
    with pytest.raises(BadInputError) as exc:
        make_cube(**kwargs)
    assert exc.value.field == field
    assert exc.value.to_detail()["code"] == "BAD_INPUT"


def test_period_end_before_start_is_bad_input():
    with pytest.raises(BadInputError):
        build_data_cube("t", date(2025, 3, 10), date(2025, 3, 1))
