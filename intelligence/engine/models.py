"""
Engine types. The DataCube and its slices are frozen once built; analyzers read, never write.
Collections are tuples defaulting to empty, single-record dimensions default to None.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

StatusTag = Literal["escalate", "hold", "pause"]
Severity = Literal["danger", "warning", "success"]
Category = Literal["efficiency", "opportunity", "risk", "trend", "composition", "planning_gap"]
Level = Literal["high", "medium", "low"]
Mode = Literal["ESCALAR", "OTIMIZAR", "PROTEGER", "REESTRUTURAR"]
Constraint = Literal["traffic", "conversion", "aov", "margin", "budget"]
Scenario = Literal["on_track", "at_risk", "off_track"]
TrendDirection = Literal["improving", "stable", "declining"]
MetricStatus = Literal["ok", "warn", "danger"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ----- DataCube -----
class CubeMeta(_Frozen):
    tenant_id: str
    period_start: date
    period_end: date
    days_in_period: int
    day_of_month: int
    days_in_month: int


class PerformanceSlice(_Frozen):
    cost: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: float = 0.0
    revenue: float = 0.0
    roas: float = 0.0
    cpa: float = 0.0
    ctr: float = 0.0
    conversion_rate: float = 0.0


class AccountSlice(PerformanceSlice):
    status_tag: StatusTag = "hold"


class SkuSlice(PerformanceSlice):
    sku: str
    name: str
    margin_pct: float
    stock: int
    gross_profit: float = 0.0
    profit_after_ads: float = 0.0
    revenue_share: float = 0.0
    spend_share: float = 0.0
    status_tag: StatusTag = "hold"


class CampaignSlice(PerformanceSlice):
    campaign_id: str
    campaign_name: str
    channel_type: str = ""
    serving_status: str = ""
    spend_share: float = 0.0
    status_tag: StatusTag = "hold"


class SegmentSlice(PerformanceSlice):
    """Device, demographic or geographic segment."""

    key: str
    label: str
    type: Optional[str] = None
    revenue_share: float = 0.0
    spend_share: float = 0.0


class WebSummary(_Frozen):
    sessions: int = 0
    users: int = 0
    engaged_sessions: int = 0
    purchases: int = 0
    purchase_revenue: float = 0.0
    bounce_rate: float = 0.0
    cart_abandonment_rate: float = 0.0
    conversion_rate: float = 0.0
    avg_order_value: float = 0.0


class FunnelStep(_Frozen):
    step: str
    count: int
    dropoff_pct: float = 0.0


class ChannelSlice(_Frozen):
    channel: str
    sessions: int = 0
    users: int = 0
    conversions: float = 0.0
    revenue: float = 0.0
    session_share: float = 0.0
    conversion_rate: float = 0.0


class PlanningTargets(_Frozen):
    """Monthly targets, already computed upstream. None means no target for that metric."""

    revenue: Optional[float] = None
    invoiced_revenue: Optional[float] = None
    ad_spend: Optional[float] = None
    roas: Optional[float] = None
    conversion_rate: Optional[float] = None
    cpa: Optional[float] = None
    sessions: Optional[float] = None
    orders: Optional[float] = None
    avg_ticket: Optional[float] = None
    approval_rate: Optional[float] = None


class TrendPoint(_Frozen):
    day: date
    value: float


class TrendData(_Frozen):
    metric: str
    direction: TrendDirection
    slope_pct: float
    moving_avg_7d: float
    previous_moving_avg_7d: float
    points: int


class CubeTrends(_Frozen):
    account_revenue: Optional[TrendData] = None
    skus: tuple[tuple[str, TrendData], ...] = ()

    def sku(self, key: str) -> Optional[TrendData]:
        for k, t in self.skus:
            if k == key:
                return t
        return None


class DataCube(_Frozen):
    meta: CubeMeta
    account: Optional[AccountSlice] = None
    skus: tuple[SkuSlice, ...] = ()
    campaigns: tuple[CampaignSlice, ...] = ()
    devices: tuple[SegmentSlice, ...] = ()
    demographics: tuple[SegmentSlice, ...] = ()
    geographic: tuple[SegmentSlice, ...] = ()
    web: Optional[WebSummary] = None
    funnel: tuple[FunnelStep, ...] = ()
    channels: tuple[ChannelSlice, ...] = ()
    planning: PlanningTargets = Field(default_factory=PlanningTargets)
    trends: CubeTrends = Field(default_factory=CubeTrends)


# ----- Findings -----
class FinancialImpact(_Frozen):
    gross_impact_brl: float
    cost_brl: float
    net_impact_brl: float
    calculation: str
    confidence: float = 0.5


class Recommendation(_Frozen):
    action: str
    impact: Level
    effort: Level
    steps: tuple[str, ...] = ()


class CognitiveFinding(BaseModel):
    id: str
    category: Category
    severity: Severity
    title: str
    description: str
    metrics: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[Recommendation] = Field(default_factory=list)
    financial_impact: Optional[FinancialImpact] = None
    root_cause: Optional[str] = None
    related_finding_ids: list[str] = Field(default_factory=list)
    constraint: Optional[Constraint] = None
    source: Literal["pattern"] = "pattern"

    @property
    def net_impact(self) -> float:
        return self.financial_impact.net_impact_brl if self.financial_impact else 0.0


# ----- Synthesis -----
class ModeAssessment(BaseModel):
    mode: Mode
    score: float
    description: str
    signals: list[str] = Field(default_factory=list)


class Bottleneck(BaseModel):
    constraint: Constraint
    severity: Severity
    financial_impact: FinancialImpact
    unlock_action: str
    explanation: str = ""
    finding_id: Optional[str] = None


class PacingProjection(BaseModel):
    metric: str
    label: str
    current_value: float
    target: float
    projected_end_of_month: float
    projected_gap_brl: float
    scenario: Scenario
    current_daily_rate: float
    daily_rate_needed: float
    confidence: float


class KeyMetric(BaseModel):
    label: str
    value: str
    status: MetricStatus


class ExecutiveSummary(BaseModel):
    headline: str
    top_action: str
    key_metrics: list[KeyMetric] = Field(default_factory=list)


class RankedRecommendation(BaseModel):
    finding_id: str
    severity: Severity
    action: str
    impact: Level
    effort: Level
    steps: list[str] = Field(default_factory=list)
    score: int
    net_impact_brl: float = 0.0


# ----- Budget -----
class BudgetEntity(BaseModel):
    entity: str
    entity_name: str = ""
    current_budget: float = Field(..., ge=0)
    current_roas: float = Field(..., ge=0)


class BudgetAllocation(BaseModel):
    entity: str
    entity_name: str
    current_budget: float
    recommended_budget: float
    delta: float
    current_roas: float
    rationale: str


class BudgetPlan(BaseModel):
    total_budget: float
    current_total_roas: float
    expected_total_roas: float
    expected_revenue_gain_brl: float
    confidence: float
    allocations: list[BudgetAllocation] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)


# ----- Response -----
class GeneratedFor(BaseModel):
    tenant_id: str
    period_start: date
    period_end: date


class CognitiveResponse(BaseModel):
    generated_for: GeneratedFor
    mode: ModeAssessment
    bottleneck: Bottleneck
    health_score: int
    findings: list[CognitiveFinding] = Field(default_factory=list)
    pacing_projections: list[PacingProjection] = Field(default_factory=list)
    executive_summary: ExecutiveSummary
    recommendations: list[RankedRecommendation] = Field(default_factory=list)
    quick_wins: list[str] = Field(default_factory=list)
    budget_plan: Optional[BudgetPlan] = None


# ----- Analysis context -----
class AnalysisContext(BaseModel):
    """What analyzers may read besides the cube: tenant and the (possibly overridden) rule tables."""

    tenant_id: str
    thresholds: dict[str, Any]

    def rules(self, section: str) -> dict[str, Any]:
        return self.thresholds[section]
