"""Shared fixtures: raw source records for one mid-month tenant, the cube built from them, a fresh context."""
import copy
import sys
from datetime import date, timedelta
from pathlib import Path
ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

import pytest

from intelligence.engine import config_loader
from intelligence.engine.models import AnalysisContext
from intelligence.engine.normalizer import build_data_cube
from intelligence.engine.thresholds import DEFAULT_THRESHOLDS

PERIOD_START = date(2025, 3, 1)
PERIOD_END = date(2025, 3, 15)


def _daily(start: date, values: list[float], key: str = "revenue", **extra) -> list[dict]:
    return [{"date": (start + timedelta(days=i)).isoformat(), key: v, **extra} for i, v in enumerate(values)]


def sample_sources() -> dict:
    return {
        "account": {"cost": 10000, "impressions": 200000, "clicks": 8000, "conversions": 120, "revenue": 45000},
        "skus": [
            {"sku": "VM-01", "name": "Vestido Midi", "cost": 3000, "impressions": 60000, "clicks": 2400, "conversions": 60, "revenue": 24000},
            {"sku": "BL-02", "name": "Blusa Linho", "cost": 2500, "impressions": 50000, "clicks": 2000, "conversions": 20, "revenue": 7500},
            {"sku": "CA-03", "name": "Calça Alfaiataria", "cost": 2000, "impressions": 40000, "clicks": 1600, "conversions": 15, "revenue": 6000},
            {"sku": "SA-04", "name": "Saia Plissada", "cost": 1500, "impressions": 30000, "clicks": 1200, "conversions": 20, "revenue": 6000},
            {"sku": "CM-05", "name": "Camisa Seda", "cost": 600, "impressions": 12000, "clicks": 480, "conversions": 5, "revenue": 1500},
            {"sku": "CI-06", "name": "Cinto Couro", "cost": 400, "impressions": 8000, "clicks": 320, "conversions": 0, "revenue": 0},
        ],
        "sku_extras": {"VM-01": {"margin_pct": 40, "stock": 120}},
        "campaigns": [
            {"campaign_id": "c1", "campaign_name": "PMax Geral", "channel_type": "PERFORMANCE_MAX", "status": "ENABLED",
             "cost": 6000, "impressions": 120000, "clicks": 5000, "conversions": 90, "revenue": 36000},
            {"campaign_id": "c2", "campaign_name": "Search Marca", "channel_type": "SEARCH", "status": "ENABLED",
             "cost": 3200, "impressions": 70000, "clicks": 2800, "conversions": 30, "revenue": 9000},
            {"campaign_id": "c3", "campaign_name": "Display Remarketing", "channel_type": "DISPLAY", "status": "ENABLED",
             "cost": 800, "impressions": 10000, "clicks": 200, "conversions": 0, "revenue": 0},
        ],
        "devices": [
            {"device": "mobile", "cost": 6000, "impressions": 130000, "clicks": 5200, "conversions": 70, "revenue": 21000},
            {"device": "desktop", "cost": 3500, "impressions": 60000, "clicks": 2500, "conversions": 45, "revenue": 22000},
            {"device": "tablet", "cost": 500, "impressions": 10000, "clicks": 300, "conversions": 5, "revenue": 2000},
        ],
        "demographics": [
            {"segment": "AGE_RANGE_25_34", "type": "age", "cost": 4000, "impressions": 80000, "clicks": 3200, "conversions": 60, "revenue": 24000},
            {"segment": "AGE_RANGE_35_44", "type": "age", "cost": 4000, "impressions": 80000, "clicks": 3200, "conversions": 45, "revenue": 16000},
            {"segment": "AGE_RANGE_55_64", "type": "age", "cost": 2000, "impressions": 40000, "clicks": 1600, "conversions": 10, "revenue": 5000},
            {"segment": "FEMALE", "type": "gender", "cost": 7000, "impressions": 140000, "clicks": 5600, "conversions": 100, "revenue": 40000},
            {"segment": "MALE", "type": "gender", "cost": 3000, "impressions": 60000, "clicks": 2400, "conversions": 20, "revenue": 5000},
        ],
        "geographic": [
            {"region": "SP", "cost": 6500, "impressions": 130000, "clicks": 5200, "conversions": 85, "revenue": 31500},
            {"region": "RJ", "cost": 2000, "impressions": 40000, "clicks": 1600, "conversions": 20, "revenue": 9000},
            {"region": "BA", "cost": 1500, "impressions": 30000, "clicks": 1200, "conversions": 15, "revenue": 4500},
        ],
        "web": {
            "sessions": 20000, "users": 15000, "engaged_sessions": 9000, "purchases": 150,
            "purchase_revenue": 45000, "bounce_rate": 0.62, "cart_abandonment_rate": 80,
        },
        "funnel": [
            {"step": "session_start", "count": 20000},
            {"step": "view_item", "count": 12000},
            {"step": "add_to_cart", "count": 2000},
            {"step": "begin_checkout", "count": 800},
            {"step": "purchase", "count": 150},
        ],
        "channels": [
            {"channel": "Paid Search", "sessions": 9000, "users": 7000, "conversions": 70, "revenue": 21000},
            {"channel": "Paid Social", "sessions": 6000, "users": 4500, "conversions": 30, "revenue": 9000},
            {"channel": "Organic Search", "sessions": 3000, "users": 2200, "conversions": 35, "revenue": 10500},
            {"channel": "Direct", "sessions": 2000, "users": 1300, "conversions": 15, "revenue": 4500},
        ],
        "planning": {"revenue": 120000, "ad_spend": 20000, "roas": 6, "sessions": 50000, "orders": 400},
        "history": {
            "account": _daily(PERIOD_START, [4000, 3900, 3700, 3600, 3300, 3200, 3000, 2900, 2700, 2600, 2500, 2300, 2200, 2000, 1900], cost=700),
            "skus": {
                "BL-02": _daily(PERIOD_START, [800, 760, 700, 650, 600, 540, 500, 450, 400, 350]),
            },
        },
    }


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    monkeypatch.setenv("ENV", "dev")
    config_loader.reset_config()
    yield
    config_loader.reset_config()


@pytest.fixture
def thresholds():
    return copy.deepcopy(DEFAULT_THRESHOLDS)


@pytest.fixture
def ctx(thresholds):
    return AnalysisContext(tenant_id="loja-teste", thresholds=thresholds)


@pytest.fixture
def sources():
    return sample_sources()


@pytest.fixture
def make_cube():
    def _make(start=PERIOD_START, end=PERIOD_END, **sources):
        return build_data_cube("loja-teste", start, end, **sources)
    return _make


@pytest.fixture
def cube(make_cube, sources):
    return make_cube(**sources)
