"""
IQS (partner quality score), 0-100, independent of the DataCube.

IQS = engajamento x 0.30 + relevancia x 0.25 + performance x 0.20
    + qualidade_audiencia x 0.15 + conteudo x 0.10

Each component is a weighted sum of sub-metric scores; each sub-metric maps a raw value
onto {100, 75, 50, 25} through a four-threshold ladder.
"""
from __future__ import annotations

from typing import Any, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from .thresholds import IQS_RULES

Tier = Literal["nano", "micro", "mid", "macro", "mega"]


class PartnerProfile(BaseModel):
    handle: str = ""
    tier: Optional[Tier] = None
    followers_count: int = Field(0, ge=0)
    following_count: int = Field(0, ge=0)
    media_count: int = Field(0, ge=0)
    followers_growth_pct_90d: float = 0.0
    real_followers_pct: Optional[float] = None
    mass_followers_pct: Optional[float] = None
    suspicious_followers_pct: Optional[float] = None
    # audience share (%) per state / age band, e.g. {"SP": 42.0}
    audience_by_state: dict[str, float] = Field(default_factory=dict)
    audience_by_age: dict[str, float] = Field(default_factory=dict)
    target_gender_pct: Optional[float] = None
    niche_match: Optional[Literal["primary", "related", "other"]] = None


class EngagementMetrics(BaseModel):
    engagement_rate: float = 0.0  # %
    saves_shares_ratio: float = 0.0  # fraction of interactions
    comment_to_like_ratio: float = 0.0  # fraction
    response_rate: float = 0.0  # fraction
    reach_rate: float = 0.0  # fraction of followers
    video_completion_rate: float = 0.0  # fraction
    format_diversity: int = 0
    engagement_rate_cv: Optional[float] = None
    posts_per_week: Optional[float] = None


class Collaboration(BaseModel):
    status: str = "completed"
    invested_amount: float = 0.0
    revenue: float = 0.0


class SubMetric(BaseModel):
    name: str
    score: float
    weight: float


class IQSComponent(BaseModel):
    name: str
    score: float
    weight: float
    sub_metrics: list[SubMetric] = Field(default_factory=list)


class IQSResult(BaseModel):
    iqs: int
    label: str
    status: str
    tier: Tier
    breakdown: dict[str, IQSComponent]


def _clamp(v: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, v))


def linear_score(value: float, ladder: Sequence[float]) -> float:
    """
    Map value onto 100/75/50/25 using [excellent, good, medium, low].
    excellent > low means higher is better; otherwise lower is better.
    """
    excellent, good, medium, low = ladder
    if excellent > low:
        if value >= excellent:
            return 100.0
        if value >= good:
            return 75.0
        if value >= medium:
            return 50.0
        return 25.0
    if value <= excellent:
        return 100.0
    if value <= good:
        return 75.0
    if value <= medium:
        return 50.0
    return 25.0


def tier_from_followers(count: int, rules: Optional[Mapping[str, Any]] = None) -> Tier:
    r = rules or IQS_RULES
    for tier, minimum in r["tiers"]:
        if count >= minimum:
            return tier
    return "nano"


def _ladder_label(score: float, ladder: Sequence[Sequence[Any]]) -> str:
    for minimum, label in ladder:
        if score >= minimum:
            return label
    return ladder[-1][1]


def iqs_label(score: float, rules: Optional[Mapping[str, Any]] = None) -> str:
    return _ladder_label(score, (rules or IQS_RULES)["labels"])


def iqs_status(score: float, rules: Optional[Mapping[str, Any]] = None) -> str:
    return _ladder_label(score, (rules or IQS_RULES)["status"])


def _component(name: str, weight: float, sub_weights: Mapping[str, float], scores: Mapping[str, float]) -> IQSComponent:
    total = sum(scores[k] * w for k, w in sub_weights.items())
    return IQSComponent(
        name=name,
        score=_clamp(round(total)),
        weight=weight,
        sub_metrics=[SubMetric(name=k, score=_clamp(round(scores[k])), weight=w) for k, w in sub_weights.items()],
    )


def _engajamento(tier: Tier, m: EngagementMetrics, r: Mapping[str, Any]) -> dict[str, float]:
    c = r["engajamento"]
    return {
        "engagement_rate": linear_score(m.engagement_rate, r["engagement_rate_by_tier"][tier]),
        "saves_shares": linear_score(m.saves_shares_ratio * 100, c["saves_shares"]),
        "comment_like_ratio": linear_score(m.comment_to_like_ratio * 100, c["comment_like_ratio"]),
        "response_rate": linear_score(m.response_rate * 100, c["response_rate"]),
    }


def _relevancia(p: PartnerProfile, r: Mapping[str, Any]) -> dict[str, float]:
    c = r["relevancia"]
    geo = (
        linear_score(sum(p.audience_by_state.get(s, 0.0) for s in c["target_states"]), c["geo_match"])
        if p.audience_by_state else c["neutral"]
    )
    age = (
        linear_score(sum(p.audience_by_age.get(a, 0.0) for a in c["target_age_bands"]), c["age_match"])
        if p.audience_by_age else c["neutral"]
    )
    gender = _clamp(p.target_gender_pct) if p.target_gender_pct is not None else c["gender_match_fixed"]
    niche = c["niche_match"][p.niche_match] if p.niche_match else c["neutral"]
    return {"geo_match": geo, "age_match": age, "gender_match": gender, "niche_match": niche}


def success_rate(collaborations: Sequence[Collaboration], neutral: float = 50.0) -> float:
    """Share (%) of completed collaborations whose revenue beat the investment; neutral without history."""
    completed = [c for c in collaborations if c.status == "completed"]
    if not completed:
        return neutral
    return sum(1 for c in completed if c.revenue > c.invested_amount) / len(completed) * 100


def _performance(p: PartnerProfile, m: EngagementMetrics, collabs: Sequence[Collaboration], r: Mapping[str, Any]) -> dict[str, float]:
    c = r["performance"]
    if m.engagement_rate_cv is not None:
        consistency = linear_score(m.engagement_rate_cv, c["consistency_cv"])
    else:
        consistency = 70.0 if m.engagement_rate > 0 else 30.0
    posts = m.posts_per_week if m.posts_per_week is not None else (min(p.media_count / 4, 10) if p.media_count else 2)
    has_history = any(x.status == "completed" for x in collabs)
    return {
        "consistency": consistency,
        "growth_90d": linear_score(p.followers_growth_pct_90d, c["growth_90d"]),
        # no history scores neutral, not failing
        "success_rate": linear_score(success_rate(collabs), c["success_rate"]) if has_history else c["success_rate_neutral"],
        "frequency": linear_score(posts, c["posts_per_week"]),
    }


def _qualidade_audiencia(p: PartnerProfile, r: Mapping[str, Any]) -> dict[str, float]:
    c = r["qualidade_audiencia"]
    real = p.real_followers_pct if p.real_followers_pct is not None else c["real_followers_default"]
    mass = p.mass_followers_pct if p.mass_followers_pct is not None else c["mass_followers_default"]
    susp = p.suspicious_followers_pct if p.suspicious_followers_pct is not None else c["suspicious_default"]
    ratio = p.followers_count / p.following_count if p.following_count > 0 else 1.0
    return {
        "real_followers": linear_score(real, c["real_followers"]),
        "mass_followers": linear_score(mass, c["mass_followers"]),
        "suspicious": linear_score(susp, c["suspicious"]),
        "follower_following_ratio": linear_score(ratio, c["follower_following_ratio"]),
    }


def _conteudo(m: EngagementMetrics, r: Mapping[str, Any]) -> dict[str, float]:
    c = r["conteudo"]
    return {
        "reach_rate": linear_score(m.reach_rate * 100, c["reach_rate"]),
        "video_completion": linear_score(m.video_completion_rate * 100, c["video_completion"]),
        "format_diversity": linear_score(m.format_diversity, c["format_diversity"]),
    }


def calculate_iqs(
    profile: PartnerProfile,
    metrics: EngagementMetrics,
    collaborations: Sequence[Collaboration] = (),
    rules: Optional[Mapping[str, Any]] = None,
) -> IQSResult:
    r = rules or IQS_RULES
    tier = profile.tier or tier_from_followers(profile.followers_count, r)
    weights = r["component_weights"]
    raw = {
        "engajamento": _engajamento(tier, metrics, r),
        "relevancia": _relevancia(profile, r),
        "performance": _performance(profile, metrics, collaborations, r),
        "qualidade_audiencia": _qualidade_audiencia(profile, r),
        "conteudo": _conteudo(metrics, r),
    }
    breakdown = {
        name: _component(name, weights[name], r[name]["weights"], scores)
        for name, scores in raw.items()
    }
    iqs = int(_clamp(round(sum(c.score * c.weight for c in breakdown.values()))))
    return IQSResult(iqs=iqs, label=iqs_label(iqs, r), status=iqs_status(iqs, r), tier=tier, breakdown=breakdown)
