"""
Metric normalizer: raw per-source records -> one immutable DataCube.
Rows for the same entity (e.g. daily rows) are summed with pandas before ratios are derived.
Currency is rounded to cents first; every ratio guards its denominator and resolves to 0.
"""
from __future__ import annotations

import calendar
import logging
import math
from datetime import date
from typing import Any, Iterable, Mapping, Optional, Sequence

import pandas as pd
from pydantic import ValidationError

from .errors import BadInputError
from .models import (
    AccountSlice,
    CampaignSlice,
    ChannelSlice,
    CubeMeta,
    CubeTrends,
    DataCube,
    FunnelStep,
    PlanningTargets,
    SegmentSlice,
    SkuSlice,
    TrendPoint,
    WebSummary,
)
from .thresholds import DEFAULT_THRESHOLDS
from .trend import analyze_trend

logger = logging.getLogger(__name__)

PERF_COLS = ["cost", "impressions", "clicks", "conversions", "revenue"]

DEVICE_LABELS = {
    "MOBILE": "Mobile",
    "DESKTOP": "Desktop",
    "TABLET": "Tablet",
    "CONNECTED_TV": "Smart TV",
    "OTHER": "Outros",
}

AGE_LABELS = {
    "AGE_RANGE_18_24": "18-24",
    "AGE_RANGE_25_34": "25-34",
    "AGE_RANGE_35_44": "35-44",
    "AGE_RANGE_45_54": "45-54",
    "AGE_RANGE_55_64": "55-64",
    "AGE_RANGE_65_UP": "65+",
    "AGE_RANGE_UNDETERMINED": "Não determinado",
}

GENDER_LABELS = {
    "MALE": "Masculino",
    "FEMALE": "Feminino",
    "UNDETERMINED": "Não determinado",
}


# ----- Ratio helpers -----
def safe_div(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is 0 or the result is not finite."""
    if not denominator:
        return 0.0
    out = numerator / denominator
    return out if math.isfinite(out) else 0.0


def round_currency(value: float) -> float:
    return round(float(value), 2)


def share_pct(value: float, total: float) -> float:
    """Percentage of total, two decimals. 0 when total is 0."""
    if not total:
        return 0.0
    return round(value / total * 10000) / 100


def shares(values: Sequence[float]) -> list[float]:
    """
    Percentages of the total in hundredths, apportioned by largest remainder so the
    rounded shares add up to exactly 100 (or are all 0 when the total is 0).
    """
    total = float(sum(values))
    if not total:
        return [0.0] * len(values)
    raw = [float(v) / total * 10000 for v in values]
    units = [math.floor(x) for x in raw]
    missing = max(0, 10000 - sum(units))
    # ties go to the earlier entry
    by_remainder = sorted(range(len(raw)), key=lambda i: (units[i] - raw[i], i))
    for i in by_remainder[:missing]:
        units[i] += 1
    return [u / 100 for u in units]


def derive_status(
    roas: float,
    cpa: float,
    conversions: float,
    margin_pct: Optional[float] = None,
    stock: Optional[int] = None,
    rules: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    pause   if (no conversions and no return) or ROAS below pause floor or CPA above ceiling
    hold    if ROAS below hold floor or margin below floor
    escalate if stock allows (stock unknown skips the stock check)
    hold    otherwise
    """
    r = rules or DEFAULT_THRESHOLDS["status"]
    if (conversions == 0 and roas == 0) or roas < r["pause_roas_below"] or cpa > r["pause_cpa_above"]:
        return "pause"
    margin = r["default_margin_pct"] if margin_pct is None else margin_pct
    if roas < r["hold_roas_below"] or margin < r["hold_margin_below"]:
        return "hold"
    if stock is None or stock > r["escalate_stock_above"]:
        return "escalate"
    return "hold"


def funnel_dropoffs(counts: Sequence[float]) -> list[float]:
    """(prev - cur) / prev * 100 per step; 0 for the first step and after an empty step."""
    out: list[float] = []
    for i, cur in enumerate(counts):
        if i == 0:
            out.append(0.0)
            continue
        prev = counts[i - 1]
        out.append(round(safe_div(prev - cur, prev) * 100, 2))
    return out


def _perf(cost: float, impressions: float, clicks: float, conversions: float, revenue: float) -> dict[str, Any]:
    cost = round_currency(cost)
    revenue = round_currency(revenue)
    return {
        "cost": cost,
        "impressions": int(impressions),
        "clicks": int(clicks),
        "conversions": float(conversions),
        "revenue": revenue,
        "roas": round(safe_div(revenue, cost), 2),
        "cpa": round_currency(safe_div(cost, conversions)),
        "ctr": round(safe_div(clicks, impressions) * 100, 2),
        "conversion_rate": round(safe_div(conversions, clicks) * 100, 2),
    }


# ----- Record validation / aggregation -----
def _as_records(records: Any, source: str) -> list[dict]:
    if records is None:
        return []
    if isinstance(records, Mapping):
        return [dict(records)]
    if not isinstance(records, Iterable) or isinstance(records, (str, bytes)):
        raise BadInputError(f"{source} must be a list of records", field=source)
    out = []
    for i, r in enumerate(records):
        if not isinstance(r, Mapping):
            raise BadInputError(f"{source}[{i}] is not a record", field=f"{source}[{i}]")
        out.append(dict(r))
    return out


def _frame(
    records: Any,
    source: str,
    keys: Sequence[str],
    numeric: Sequence[str],
    optional_keys: Sequence[str] = (),
) -> pd.DataFrame:
    """DataFrame with key columns as str and numeric columns coerced (missing -> 0)."""
    rows = _as_records(records, source)
    if not rows:
        return pd.DataFrame(columns=[*keys, *optional_keys, *numeric])
    df = pd.DataFrame(rows)
    for k in keys:
        if k not in df.columns or df[k].isna().any() or (df[k].astype(str).str.strip() == "").any():
            raise BadInputError(f"{source}: every record needs a non-empty '{k}'", field=f"{source}.{k}")
        df[k] = df[k].astype(str).str.strip()
    for k in optional_keys:
        if k not in df.columns:
            df[k] = ""
        df[k] = df[k].fillna("").astype(str)
    for col in numeric:
        if col not in df.columns:
            df[col] = 0.0
            continue
        try:
            df[col] = pd.to_numeric(df[col]).fillna(0.0).astype(float)
        except (TypeError, ValueError) as e:
            raise BadInputError(f"{source}.{col} must be numeric", field=f"{source}.{col}") from e
        if (df[col] < 0).any():
            raise BadInputError(f"{source}.{col} must not be negative", field=f"{source}.{col}")
    return df


def _aggregate(df: pd.DataFrame, keys: Sequence[str], numeric: Sequence[str], first: Sequence[str] = ()) -> pd.DataFrame:
    if df.empty:
        return df
    named_aggs: dict[str, tuple[str, str]] = {c: (c, "sum") for c in numeric}
    for c in first:
        named_aggs[c] = (c, "first")
    # sort=True keeps output order independent of input row order
    return df.groupby(list(keys), dropna=False, sort=True).agg(**named_aggs).reset_index()


# ----- Dimension builders -----
def _build_account(records: Any, status_rules: Mapping[str, Any]) -> Optional[AccountSlice]:
    df = _frame(records, "account", [], PERF_COLS)
    if df.empty:
        return None
    totals = df[PERF_COLS].sum()
    perf = _perf(*(float(totals[c]) for c in PERF_COLS))
    status = derive_status(perf["roas"], perf["cpa"], perf["conversions"], None, None, status_rules)
    return AccountSlice(**perf, status_tag=status)


def _build_skus(records: Any, extras: Optional[Mapping[str, Mapping[str, Any]]], status_rules: Mapping[str, Any]) -> tuple[SkuSlice, ...]:
    df = _frame(records, "skus", ["sku"], PERF_COLS, optional_keys=["name"])
    if df.empty:
        return ()
    agg = _aggregate(df, ["sku"], PERF_COLS, first=["name"])
    revenue_shares = shares(agg["revenue"].tolist())
    spend_shares = shares(agg["cost"].tolist())
    extras = extras or {}
    out = []
    for i, row in enumerate(agg.to_dict("records")):
        perf = _perf(row["cost"], row["impressions"], row["clicks"], row["conversions"], row["revenue"])
        ext = extras.get(row["sku"]) or {}
        try:
            margin = float(ext.get("margin_pct", status_rules["default_margin_pct"]))
            stock = int(ext.get("stock", status_rules["default_stock"]))
        except (TypeError, ValueError) as e:
            raise BadInputError(f"sku_extras[{row['sku']}] has non-numeric margin/stock", field="sku_extras") from e
        gross_profit = round_currency(perf["revenue"] * margin / 100)
        out.append(SkuSlice(
            sku=row["sku"],
            name=row["name"] or row["sku"],
            margin_pct=margin,
            stock=stock,
            gross_profit=gross_profit,
            profit_after_ads=round_currency(gross_profit - perf["cost"]),
            revenue_share=revenue_shares[i],
            spend_share=spend_shares[i],
            status_tag=derive_status(perf["roas"], perf["cpa"], perf["conversions"], margin, stock, status_rules),
            **perf,
        ))
    out.sort(key=lambda s: (-s.revenue, s.sku))
    return tuple(out)


def _build_campaigns(records: Any, status_rules: Mapping[str, Any]) -> tuple[CampaignSlice, ...]:
    df = _frame(records, "campaigns", ["campaign_id"], PERF_COLS, optional_keys=["campaign_name", "channel_type", "status"])
    if df.empty:
        return ()
    agg = _aggregate(df, ["campaign_id"], PERF_COLS, first=["campaign_name", "channel_type", "status"])
    spend_shares = shares(agg["cost"].tolist())
    out = []
    for i, row in enumerate(agg.to_dict("records")):
        perf = _perf(row["cost"], row["impressions"], row["clicks"], row["conversions"], row["revenue"])
        out.append(CampaignSlice(
            campaign_id=row["campaign_id"],
            campaign_name=row["campaign_name"] or row["campaign_id"],
            channel_type=row["channel_type"],
            serving_status=row["status"],
            spend_share=spend_shares[i],
            status_tag=derive_status(perf["roas"], perf["cpa"], perf["conversions"], None, None, status_rules),
            **perf,
        ))
    out.sort(key=lambda c: (-c.cost, c.campaign_id))
    return tuple(out)


def _segments(agg: pd.DataFrame, key_col: str, labels: Mapping[str, str], seg_type: Optional[str] = None) -> list[SegmentSlice]:
    revenue_shares = shares(agg["revenue"].tolist())
    spend_shares = shares(agg["cost"].tolist())
    out = []
    for i, row in enumerate(agg.to_dict("records")):
        perf = _perf(row["cost"], row["impressions"], row["clicks"], row["conversions"], row["revenue"])
        key = row[key_col]
        out.append(SegmentSlice(
            key=key,
            label=labels.get(key, key),
            type=seg_type,
            revenue_share=revenue_shares[i],
            spend_share=spend_shares[i],
            **perf,
        ))
    out.sort(key=lambda s: (-s.revenue, s.key))
    return out


def _build_devices(records: Any) -> tuple[SegmentSlice, ...]:
    df = _frame(records, "devices", ["device"], PERF_COLS)
    if df.empty:
        return ()
    df["device"] = df["device"].str.upper()
    return tuple(_segments(_aggregate(df, ["device"], PERF_COLS), "device", DEVICE_LABELS))


def _build_demographics(records: Any) -> tuple[SegmentSlice, ...]:
    df = _frame(records, "demographics", ["segment", "type"], PERF_COLS)
    if df.empty:
        return ()
    df["type"] = df["type"].str.lower()
    bad = sorted(set(df["type"]) - {"age", "gender"})
    if bad:
        raise BadInputError(f"demographics.type must be 'age' or 'gender', got {bad}", field="demographics.type")
    out: list[SegmentSlice] = []
    # shares are computed within each type so age and gender each sum to ~100
    for seg_type, labels in (("age", AGE_LABELS), ("gender", GENDER_LABELS)):
        part = df[df["type"] == seg_type]
        if part.empty:
            continue
        out.extend(_segments(_aggregate(part, ["segment"], PERF_COLS), "segment", labels, seg_type))
    return tuple(out)


def _build_geographic(records: Any) -> tuple[SegmentSlice, ...]:
    df = _frame(records, "geographic", ["region"], PERF_COLS)
    if df.empty:
        return ()
    return tuple(_segments(_aggregate(df, ["region"], PERF_COLS), "region", {}))


WEB_COLS = ["sessions", "users", "engaged_sessions", "purchases", "purchase_revenue", "bounce_rate", "cart_abandonment_rate"]


def _build_web(records: Any) -> Optional[WebSummary]:
    df = _frame(records, "web", [], WEB_COLS)
    if df.empty:
        return None
    sessions = float(df["sessions"].sum())
    purchases = float(df["purchases"].sum())
    revenue = round_currency(df["purchase_revenue"].sum())
    # rates are session-weighted when several rows are given
    if len(df) > 1 and sessions:
        bounce = float((df["bounce_rate"] * df["sessions"]).sum() / sessions)
        abandonment = float((df["cart_abandonment_rate"] * df["sessions"]).sum() / sessions)
    else:
        bounce = float(df["bounce_rate"].iloc[0])
        abandonment = float(df["cart_abandonment_rate"].iloc[0])
    return WebSummary(
        sessions=int(sessions),
        users=int(df["users"].sum()),
        engaged_sessions=int(df["engaged_sessions"].sum()),
        purchases=int(purchases),
        purchase_revenue=revenue,
        bounce_rate=round(bounce, 4),
        cart_abandonment_rate=round(abandonment, 2),
        conversion_rate=round(safe_div(purchases, sessions) * 100, 2),
        avg_order_value=round_currency(safe_div(revenue, purchases)),
    )


def _build_funnel(records: Any) -> tuple[FunnelStep, ...]:
    rows = _as_records(records, "funnel")
    if not rows:
        return ()
    steps, counts = [], []
    for i, r in enumerate(rows):
        name = str(r.get("step") or "").strip()
        if not name:
            raise BadInputError(f"funnel[{i}] needs a 'step'", field=f"funnel[{i}].step")
        try:
            count = int(r.get("count") or 0)
        except (TypeError, ValueError) as e:
            raise BadInputError(f"funnel[{i}].count must be numeric", field=f"funnel[{i}].count") from e
        steps.append(name)
        counts.append(count)
    drops = funnel_dropoffs(counts)
    return tuple(FunnelStep(step=s, count=c, dropoff_pct=d) for s, c, d in zip(steps, counts, drops))


CHANNEL_COLS = ["sessions", "users", "conversions", "revenue"]


def _build_channels(records: Any) -> tuple[ChannelSlice, ...]:
    df = _frame(records, "channels", ["channel"], CHANNEL_COLS)
    if df.empty:
        return ()
    agg = _aggregate(df, ["channel"], CHANNEL_COLS)
    session_shares = shares(agg["sessions"].tolist())
    out = [
        ChannelSlice(
            channel=row["channel"],
            sessions=int(row["sessions"]),
            users=int(row["users"]),
            conversions=float(row["conversions"]),
            revenue=round_currency(row["revenue"]),
            session_share=session_shares[i],
            conversion_rate=round(safe_div(row["conversions"], row["sessions"]) * 100, 2),
        )
        for i, row in enumerate(agg.to_dict("records"))
    ]
    out.sort(key=lambda c: (-c.sessions, c.channel))
    return tuple(out)


def _build_planning(planning: Optional[Mapping[str, Any]]) -> PlanningTargets:
    if not planning:
        return PlanningTargets()
    try:
        return PlanningTargets(**{k: v for k, v in planning.items() if v is not None})
    except ValidationError as e:
        raise BadInputError("planning targets are invalid", field="planning", details=e.errors()) from e


def _points(rows: Any, metric: str, source: str) -> list[TrendPoint]:
    out = []
    for i, r in enumerate(_as_records(rows, source)):
        if metric not in r:
            continue
        try:
            out.append(TrendPoint(day=r.get("date"), value=r[metric]))
        except ValidationError as e:
            raise BadInputError(f"{source}[{i}] needs a date and numeric {metric}", field=source, details=e.errors()) from e
    return out


def _build_trends(history: Optional[Mapping[str, Any]], trend_rules: Mapping[str, Any]) -> CubeTrends:
    if not history:
        return CubeTrends()
    account_rows = history.get("account") or []
    sku_trends = []
    for key in sorted((history.get("skus") or {}).keys()):
        t = analyze_trend("revenue", _points(history["skus"][key], "revenue", f"history.skus.{key}"), trend_rules)
        if t is not None:
            sku_trends.append((str(key), t))
    return CubeTrends(
        account_revenue=analyze_trend("revenue", _points(account_rows, "revenue", "history.account"), trend_rules),
        skus=tuple(sku_trends),
    )


def build_meta(tenant_id: str, period_start: date, period_end: date, as_of: Optional[date] = None) -> CubeMeta:
    """Calendar facts for pacing. `as_of` defaults to the period end."""
    if period_end < period_start:
        raise BadInputError("period_end is before period_start", field="period_end")
    ref = as_of or period_end
    return CubeMeta(
        tenant_id=tenant_id,
        period_start=period_start,
        period_end=period_end,
        days_in_period=(period_end - period_start).days + 1,
        day_of_month=ref.day,
        days_in_month=calendar.monthrange(ref.year, ref.month)[1],
    )


def build_data_cube(
    tenant_id: str,
    period_start: date,
    period_end: date,
    *,
    as_of: Optional[date] = None,
    account: Any = None,
    skus: Any = None,
    sku_extras: Optional[Mapping[str, Mapping[str, Any]]] = None,
    campaigns: Any = None,
    devices: Any = None,
    demographics: Any = None,
    geographic: Any = None,
    web: Any = None,
    funnel: Any = None,
    channels: Any = None,
    planning: Optional[Mapping[str, Any]] = None,
    history: Optional[Mapping[str, Any]] = None,
    thresholds: Optional[Mapping[str, Any]] = None,
) -> DataCube:
    """
    Normalize whatever sources the caller has into one DataCube. Every source is optional;
    an absent source yields an empty tuple (or None for single-record sources).
    Raises BadInputError for malformed records.
    """
    t = thresholds or DEFAULT_THRESHOLDS
    status_rules = t["status"]
    cube = DataCube(
        meta=build_meta(tenant_id, period_start, period_end, as_of),
        account=_build_account(account, status_rules),
        skus=_build_skus(skus, sku_extras, status_rules),
        campaigns=_build_campaigns(campaigns, status_rules),
        devices=_build_devices(devices),
        demographics=_build_demographics(demographics),
        geographic=_build_geographic(geographic),
        web=_build_web(web),
        funnel=_build_funnel(funnel),
        channels=_build_channels(channels),
        planning=_build_planning(planning),
        trends=_build_trends(history, t["trend"]),
    )
    logger.debug(
        "Cube built | tenant=%s skus=%s campaigns=%s devices=%s demographics=%s geo=%s",
        tenant_id, len(cube.skus), len(cube.campaigns), len(cube.devices), len(cube.demographics), len(cube.geographic),
    )
    return cube
