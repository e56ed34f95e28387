"""
Rate limit middleware for POSTs under RATE_LIMITED_PREFIXES: N requests per window per tenant + client IP.
Returns 429 Too Many Requests when exceeded. Limits come from config (analysis_rate_limit_n,
analysis_rate_limit_window_sec); n <= 0 disables the limit.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..config_loader import get

RATE_LIMITED_PREFIXES = ("/api/v1/intelligence", "/api/v1/budget/", "/api/v1/insights/")

# key -> deque of timestamps
_store: dict[str, deque] = {}
_store_lock = threading.Lock()


def _key(request: Request) -> str:
    tenant = request.headers.get("X-Tenant-Id") or "default"
    forwarded = request.headers.get("X-Forwarded-For")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else "unknown")
    return f"{tenant}:{ip}"


def _is_over_limit(key: str, limit: int, window: float) -> bool:
    now = time.monotonic()
    with _store_lock:
        if key not in _store:
            _store[key] = deque(maxlen=limit * 2)
        q = _store[key]
        while q and q[0] < now - window:
            q.popleft()
        if len(q) >= limit:
            return True
        q.append(now)
    return False


def reset_rate_limits() -> None:
    with _store_lock:
        _store.clear()


class AnalysisRateLimitMiddleware(BaseHTTPMiddleware):
    """Limit POSTs under RATE_LIMITED_PREFIXES per tenant."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.scope.get("path") or ""
        if request.method != "POST" or not path.startswith(RATE_LIMITED_PREFIXES):
            return await call_next(request)
        limit = int(get("analysis_rate_limit_n", 30))
        window = float(get("analysis_rate_limit_window_sec", 60))
        if limit > 0 and _is_over_limit(_key(request), limit, window):
            return JSONResponse(
                status_code=429,
                content={"detail": {"code": "RATE_LIMIT_EXCEEDED", "message": f"Too many analysis requests. Limit {limit} per {window:g}s."}},
            )
        return await call_next(request)
