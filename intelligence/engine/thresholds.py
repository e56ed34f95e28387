"""
Declarative rule tables. Every threshold and shift fraction the analyzers use lives here, grouped by consumer.
Override any subset with a JSON file (THRESHOLDS_CONFIG_PATH or config key `thresholds_path`);
overrides are deep-merged over these defaults.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .errors import BadInputError

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_THRESHOLDS_PATH = REPO_ROOT / "thresholds_config.json"

# Status tag for SKUs, campaigns and the account (escalate | hold | pause).
STATUS_RULES = {
    "pause_roas_below": 5.0,
    "pause_cpa_above": 80.0,
    "hold_roas_below": 7.0,
    "hold_margin_below": 25.0,
    "escalate_stock_above": 20,
    "default_margin_pct": 30.0,
    "default_stock": 0,
}

TREND_RULES = {
    "min_points": 3,
    "window": 7,
    "improving_slope_pct": 1.5,
    "declining_slope_pct": -1.5,
    "improving_ma_floor": 0.95,
    "declining_ma_ceiling": 1.05,
}

DEVICE_RULES = {
    "min_spend": 100.0,
    "underperform_ratio": 0.5,
    "danger_ratio": 0.3,
    "underperform_shift_pct": 30.0,
    "opportunity_roas_above": 7.0,
    "opportunity_share_below": 40.0,
    "waste_min_spend": 100.0,
}

DEMOGRAPHIC_RULES = {
    "min_spend": 50.0,
    "gender_min_spend": 100.0,
    "age_cpa_multiple": 2.0,
    "age_opportunity_roas_above": 7.0,
    "age_opportunity_share_below": 30.0,
    "gender_gap_ratio": 0.5,
    "gender_shift_ratio": 0.2,
}

GEOGRAPHIC_RULES = {
    "min_spend": 50.0,
    "min_regions": 2,
    "concentration_share_above": 60.0,
    "concentration_target": 50.0,
    "scalable_roas_above": 7.0,
    "scalable_share_below": 20.0,
    "waste_roas_below": 3.0,
    "waste_min_spend": 200.0,
    "waste_target_roas": 5.0,
    "waste_cut_ratio": 0.5,
}

EFFICIENCY_RULES = {
    "account_min_spend": 100.0,
    "zero_conv_min_spend": 200.0,
    "low_roas_campaign_below": 3.0,
    "low_roas_campaign_min_spend": 500.0,
    "low_roas_campaign_target": 5.0,
    "high_cpa_above": 80.0,
    "high_cpa_min_spend": 300.0,
    "low_roas_budget_below": 5.0,
    "low_roas_budget_share_above": 40.0,
    "low_roas_budget_share_target": 20.0,
    "low_roas_budget_min_skus": 3,
    "low_roas_budget_shift_ratio": 0.5,
}

RISK_RULES = {
    "pause_min_spend": 500.0,
    "bounce_rate_above": 0.55,
    "bounce_danger_step": 0.10,
    "bounce_target": 0.45,
    "cart_abandonment_above": 75.0,
    "cart_abandonment_danger_step": 10.0,
    "cart_abandonment_target": 65.0,
    "sku_concentration_above": 50.0,
    "sku_concentration_min_skus": 5,
    "sku_concentration_target": 30.0,
    "funnel_leak_dropoff_above": 70.0,
    "funnel_leak_recovery_pct": 10.0,
    "funnel_leak_confidence": 0.3,
}

OPPORTUNITY_RULES = {
    "star_roas_above": 8.0,
    "star_spend_below_avg_ratio": 0.5,
    "star_min_conversions": 2,
    "scalable_max_skus": 5,
    "scalable_uplift_pct": 20.0,
    "scalable_confidence": 0.45,
    "growth_roas_above": 8.0,
    "growth_min_spend": 1000.0,
    "growth_increase_pct": 20.0,
    "growth_roas_decay": 0.7,
}

COMPOSITION_RULES = {
    "paid_share_above": 70.0,
    "paid_share_target": 50.0,
    "organic_share_above": 40.0,
    "organic_paid_below": 30.0,
    "direct_share_above": 25.0,
    "min_channel_sessions": 50,
    "best_channel_multiple": 1.5,
    "paid_channels": ["paid search", "paid social", "paid shopping", "paid other", "display", "cross-network"],
    "organic_channels": ["organic search", "organic social"],
    "direct_channels": ["direct"],
}

TREND_FINDING_RULES = {
    "sku_min_spend": 200.0,
    "sku_limit": 3,
    "max_decline_pct": 100.0,
    "declining_confidence": 0.3,
    "improving_confidence": 0.6,
}

PLANNING_GAP_RULES = {
    # per metric: gap % that raises a finding, gap % that makes it danger
    "revenue_gap_pct": 10.0,
    "revenue_danger_pct": 20.0,
    "roas_gap_pct": 15.0,
    "roas_danger_pct": 20.0,
    "budget_gap_pct": 20.0,
    "budget_danger_pct": 40.0,
    "conversion_gap_pct": 15.0,
    "conversion_danger_pct": 25.0,
    "ticket_gap_pct": 15.0,
    "ticket_danger_pct": 20.0,
    "sessions_gap_pct": 15.0,
    "sessions_danger_pct": 20.0,
    "cpa_gap_pct": 20.0,
    "cpa_danger_pct": 40.0,
    "sessions_confidence": 0.35,
    "ahead_confidence": 0.7,
}

PACING_RULES = {
    "on_track_ratio": 0.95,
    "at_risk_ratio": 0.80,
    "confidence_base": 0.4,
    "confidence_slope": 0.5,
    "confidence_cap": 0.9,
}

# Severity-mix penalties/bonuses; components weighted into the health score.
HEALTH_RULES = {
    "danger_penalty": 15.0,
    "warning_penalty": 8.0,
    "success_bonus": 3.0,
    "severity_weight": 0.50,
    "pacing_weight": 0.25,
    "roas_weight": 0.25,
    "pacing_scores": {"on_track": 100.0, "at_risk": 60.0, "off_track": 20.0},
    "pacing_neutral": 70.0,
    "roas_neutral": 50.0,
    # (min ratio of ROAS to target, score)
    "roas_target_ladder": [[1.0, 100.0], [0.8, 60.0], [0.6, 30.0], [0.0, 10.0]],
    # absolute ladder when no planning target exists: (min ROAS, score)
    "roas_absolute_ladder": [[8.0, 100.0], [7.0, 80.0], [5.0, 50.0], [0.0, 15.0]],
}

MODE_RULES = {
    "escalate_health_min": 75.0,
    "restructure_health_below": 40.0,
    "restructure_min_structural": 3,
    "structural_categories": ["efficiency", "risk", "planning_gap"],
}

# Lower index wins ties in bottleneck selection.
CONSTRAINT_PRIORITY = ["traffic", "conversion", "aov", "margin", "budget"]

BOTTLENECK_RULES = {
    "decomposition_uplift_pct": 10.0,
    "unlock_actions": {
        "traffic": "Increase qualified traffic: expand reach on the best-converting channels",
        "conversion": "Improve conversion: fix checkout friction and landing pages for top SKUs",
        "aov": "Raise average order value: bundles, free-shipping threshold and cross-sell",
        "margin": "Protect margin: cut spend on SKUs and campaigns with ROAS below break-even",
        "budget": "Unlock budget: scale spend on entities with proven high ROAS",
    },
}

RANKER_RULES = {
    "impact_rank": {"high": 0, "medium": 1, "low": 2},
    "effort_rank": {"low": 0, "medium": 1, "high": 2},
    "severity_rank": {"danger": 0, "warning": 1, "success": 2},
}

BUDGET_RULES = {
    "elasticity": 0.30,
    "max_cut_pct": 50.0,
    "max_increase_pct": 100.0,
    "step_pct": 1.0,
    "confidence": 0.3,
    "min_entities": 2,
}

# Ladders are [excellent, good, medium, low]; direction inferred (excellent > low means higher is better).
IQS_RULES = {
    "component_weights": {
        "engajamento": 0.30,
        "relevancia": 0.25,
        "performance": 0.20,
        "qualidade_audiencia": 0.15,
        "conteudo": 0.10,
    },
    "tiers": [["mega", 1_000_000], ["macro", 500_000], ["mid", 100_000], ["micro", 10_000], ["nano", 0]],
    "engagement_rate_by_tier": {
        "nano": [5, 3, 2, 0],
        "micro": [3, 2, 1, 0],
        "mid": [2, 1.5, 1, 0],
        "macro": [1.5, 1, 0.7, 0],
        "mega": [1, 0.7, 0.5, 0],
    },
    "engajamento": {
        "weights": {"engagement_rate": 0.40, "saves_shares": 0.25, "comment_like_ratio": 0.20, "response_rate": 0.15},
        "saves_shares": [20, 10, 5, 0],
        "comment_like_ratio": [3, 2, 1, 0],
        "response_rate": [30, 15, 5, 0],
    },
    "relevancia": {
        "weights": {"geo_match": 0.30, "age_match": 0.25, "gender_match": 0.20, "niche_match": 0.25},
        "target_states": ["SP", "RJ", "MG"],
        "target_age_bands": ["25-34", "35-44"],
        "neutral": 50,
        "geo_match": [60, 40, 20, 0],
        "age_match": [60, 40, 20, 0],
        "gender_match_fixed": 60,
        "niche_match": {"primary": 100, "related": 75, "other": 25},
    },
    "performance": {
        "weights": {"consistency": 0.30, "growth_90d": 0.25, "success_rate": 0.30, "frequency": 0.15},
        "growth_90d": [10, 5, 1, -999],
        "success_rate": [80, 60, 40, 0],
        "success_rate_neutral": 50,
        "consistency_cv": [0.2, 0.4, 0.6, 10],
        "posts_per_week": [5, 3, 1, 0],
    },
    "qualidade_audiencia": {
        "weights": {"real_followers": 0.40, "mass_followers": 0.20, "suspicious": 0.25, "follower_following_ratio": 0.15},
        "real_followers": [85, 70, 55, 0],
        "real_followers_default": 75,
        "mass_followers": [10, 20, 35, 100],
        "mass_followers_default": 15,
        "suspicious": [5, 15, 30, 100],
        "suspicious_default": 10,
        "follower_following_ratio": [10, 5, 2, 0],
    },
    "conteudo": {
        "weights": {"reach_rate": 0.50, "video_completion": 0.25, "format_diversity": 0.25},
        "reach_rate": [30, 20, 10, 0],
        "video_completion": [60, 40, 20, 0],
        "format_diversity": [3, 2, 1, 0],
    },
    "labels": [[80, "Excelente"], [60, "Bom"], [40, "Médio"], [0, "Baixo"]],
    "status": [[60, "ok"], [40, "warn"], [0, "danger"]],
}

DEFAULT_THRESHOLDS: dict[str, Any] = {
    "status": STATUS_RULES,
    "trend": TREND_RULES,
    "device": DEVICE_RULES,
    "demographic": DEMOGRAPHIC_RULES,
    "geographic": GEOGRAPHIC_RULES,
    "efficiency": EFFICIENCY_RULES,
    "risk": RISK_RULES,
    "opportunity": OPPORTUNITY_RULES,
    "composition": COMPOSITION_RULES,
    "trend_findings": TREND_FINDING_RULES,
    "planning_gap": PLANNING_GAP_RULES,
    "pacing": PACING_RULES,
    "health": HEALTH_RULES,
    "mode": MODE_RULES,
    "bottleneck": BOTTLENECK_RULES,
    "ranker": RANKER_RULES,
    "budget": BUDGET_RULES,
    "iqs": IQS_RULES,
}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_thresholds(
    path: Optional[os.PathLike | str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """
    Defaults, then the JSON file (explicit path, THRESHOLDS_CONFIG_PATH, or repo-root
    thresholds_config.json when present), then in-memory overrides. Returns a fresh copy.
    """
    merged = copy.deepcopy(DEFAULT_THRESHOLDS)
    p = path or os.environ.get("THRESHOLDS_CONFIG_PATH")
    if p is None and DEFAULT_THRESHOLDS_PATH.exists():
        p = DEFAULT_THRESHOLDS_PATH
    if p is not None:
        try:
            with open(p, "r") as f:
                file_overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BadInputError(f"Cannot read thresholds file {p}: {e}", field="thresholds_path") from e
        if not isinstance(file_overrides, dict):
            raise BadInputError(f"Thresholds file {p} must hold a JSON object", field="thresholds_path")
        logger.info("Thresholds overridden from %s (%s sections)", p, len(file_overrides))
        merged = _deep_merge(merged, file_overrides)
    if overrides:
        merged = _deep_merge(merged, overrides)
    return merged
