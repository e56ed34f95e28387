"""
FastAPI surface for the insight engine: cognitive analysis, plain-text summary, budget plan,
partner IQS and the actions-taken log. Tenant comes from the X-Tenant-Id header (default "default").
"""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

_root = Path(__file__).resolve().parents[2]  # repo root when main.py is intelligence/engine/main.py
if not load_dotenv(_root / ".env") and Path.cwd() != _root:
    load_dotenv(Path.cwd() / ".env")

import logging
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Optional, Union

from .logging_config import configure_logging
configure_logging()

logger = logging.getLogger(__name__)

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest

from .action_log import ACTION_TYPES, get_action_log
from .budget_optimizer import optimize_budget
from .config import get_cors_origins, get_env
from .engine import run_analysis
from .errors import BadInputError, InvariantViolation
from .middleware.rate_limit import AnalysisRateLimitMiddleware
from .models import BudgetEntity, BudgetPlan, CognitiveResponse
from .partner_scoring import Collaboration, EngagementMetrics, IQSResult, PartnerProfile, calculate_iqs
from .summary_text import build_context_summary
from .thresholds import load_thresholds


@asynccontextmanager
async def lifespan(app: FastAPI):
    """On startup: resolve thresholds once so a broken override file fails the boot, not the first request."""
    thresholds = load_thresholds()
    logger.info("Insight engine starting | env=%s threshold_sections=%s", get_env(), len(thresholds))
    logger.info("Request logging active: every API request will be logged (METHOD path -> status | duration)")
    yield


app = FastAPI(title="E-commerce Insight Engine API", version="1.0.0", lifespan=lifespan)


# ----- Global exception handlers (consistent JSON + logging) -----
@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException):
    """Log 5xx and return consistent JSON."""
    if exc.status_code >= 500:
        logger.error("HTTP %s %s -> %s | detail=%s", exc.status_code, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(BadInputError)
def bad_input_handler(request: Request, exc: BadInputError):
    logger.info("Bad input: %s %s | %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": exc.to_detail()})


@app.exception_handler(InvariantViolation)
def invariant_handler(request: Request, exc: InvariantViolation):
    logger.exception("Invariant violated: %s %s | %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "Internal invariant violated. Check server logs."}},
    )


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    """Log full traceback and return 500 with safe message."""
    logger.exception(
        "Unhandled exception: %s %s -> %s | %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        str(exc)[:200],
    )
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred. Check server logs."}},
    )


app.add_middleware(CORSMiddleware, allow_origins=get_cors_origins(), allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
app.add_middleware(AnalysisRateLimitMiddleware)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next):
        path = request.url.path or ""
        if request.query_params:
            path = f"{path}?{request.query_params}"
        logger.info("%s %s ...", request.method, path)
        t0 = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info("%s %s -> %s | %s ms", request.method, path, response.status_code, round(elapsed_ms, 1))
        return response


# Outermost so every request is logged, including rate-limited ones
app.add_middleware(RequestLogMiddleware)


def get_tenant_id(request: Request) -> str:
    return request.headers.get("X-Tenant-Id") or "default"


# ----- Structured error -----
def api_error(code: str, message: str, status: int = 400):
    raise HTTPException(status, detail={"code": code, "message": message})


# ----- Schemas -----
Records = Union[list[dict[str, Any]], dict[str, Any]]


class IntelligenceBody(BaseModel):
    """Raw per-source records; every source is optional."""

    period_start: date
    period_end: date
    as_of: Optional[date] = None
    account: Optional[Records] = None
    skus: Optional[list[dict[str, Any]]] = None
    sku_extras: Optional[dict[str, dict[str, Any]]] = None
    campaigns: Optional[list[dict[str, Any]]] = None
    devices: Optional[list[dict[str, Any]]] = None
    demographics: Optional[list[dict[str, Any]]] = None
    geographic: Optional[list[dict[str, Any]]] = None
    web: Optional[Records] = None
    funnel: Optional[list[dict[str, Any]]] = None
    channels: Optional[list[dict[str, Any]]] = None
    planning: Optional[dict[str, Any]] = None
    history: Optional[dict[str, Any]] = None
    thresholds: Optional[dict[str, Any]] = None


class BudgetPlanBody(BaseModel):
    entities: list[BudgetEntity] = Field(default_factory=list)
    total_budget: Optional[float] = Field(None, ge=0)


class IQSBody(BaseModel):
    profile: PartnerProfile
    metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    collaborations: list[Collaboration] = Field(default_factory=list)


class ActionBody(BaseModel):
    action_type: str
    actor: Optional[str] = None
    note: Optional[str] = None


def _analyze(body: IntelligenceBody, tenant_id: str) -> CognitiveResponse:
    sources = body.model_dump(exclude={"period_start", "period_end", "as_of", "thresholds"}, exclude_none=True)
    return run_analysis(
        tenant_id,
        body.period_start,
        body.period_end,
        as_of=body.as_of,
        threshold_overrides=body.thresholds,
        **sources,
    )


# ----- Endpoints -----
@app.get("/health")
def health():
    return {"status": "ok", "env": get_env()}


@app.post("/api/v1/intelligence", response_model=CognitiveResponse)
def intelligence(body: IntelligenceBody, request: Request):
    """Full cognitive analysis for one tenant and period."""
    tenant = get_tenant_id(request)
    logger.info("Intelligence | tenant=%s period=%s..%s", tenant, body.period_start, body.period_end)
    return _analyze(body, tenant)


@app.post("/api/v1/intelligence/summary", response_class=PlainTextResponse)
def intelligence_summary(body: IntelligenceBody, request: Request, max_findings: int = Query(10, ge=1, le=50)):
    """Same analysis rendered as plain text for an LLM prompt."""
    return build_context_summary(_analyze(body, get_tenant_id(request)), max_findings=max_findings)


@app.post("/api/v1/budget/plan", response_model=BudgetPlan)
def budget_plan(body: BudgetPlanBody):
    return optimize_budget(body.entities, body.total_budget, rules=load_thresholds()["budget"])


@app.post("/api/v1/partners/iqs", response_model=IQSResult)
def partner_iqs(body: IQSBody):
    return calculate_iqs(body.profile, body.metrics, body.collaborations, rules=load_thresholds()["iqs"])


@app.post("/api/v1/insights/{finding_id:path}/actions")
def record_action(finding_id: str, body: ActionBody, request: Request):
    """Record an action taken against a finding id (ids are stable across runs)."""
    if body.action_type not in ACTION_TYPES:
        api_error("BAD_INPUT", f"action_type must be one of {', '.join(ACTION_TYPES)}", 422)
    entry = get_action_log().record(get_tenant_id(request), finding_id, body.action_type, body.actor, body.note)
    return {"ok": True, "action": entry.model_dump(mode="json")}


@app.get("/api/v1/insights/{finding_id:path}/actions")
def list_actions(finding_id: str, request: Request, action_type: Optional[str] = Query(None)):
    items = get_action_log().list(get_tenant_id(request), finding_id, action_type)
    return {"items": [r.model_dump(mode="json") for r in items], "count": len(items), "finding_id": finding_id}
