"""
Structured logging for analysis runs: tenant_id, run name, period, findings_generated, runtime, errors.
One JSON object per line on the "intelligence.runs" logger.
"""
from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from typing import Any, Optional

from ..logging_config import resolve_level

_logger: Optional[logging.Logger] = None


def get_logger() -> logging.Logger:
    global _logger
    if _logger is None:
        _logger = logging.getLogger("intelligence.runs")
        if not _logger.handlers:
            h = logging.StreamHandler()
            h.setFormatter(logging.Formatter("%(message)s"))
            _logger.addHandler(h)
            _logger.propagate = False
            _logger.setLevel(resolve_level())
    return _logger


def _structured(level: str, message: str, **kwargs: Any) -> None:
    payload = {"level": level, "message": message, **kwargs}
    get_logger().log(getattr(logging, level.upper(), logging.INFO), json.dumps(payload, default=str))


def log_analysis_run(
    tenant_id: str,
    run_name: str,
    findings_generated: int,
    runtime_seconds: float,
    period: Optional[str] = None,
    errors: Optional[list[str]] = None,
    **extra: Any,
) -> None:
    _structured(
        "INFO" if not errors else "ERROR",
        "analysis_run",
        tenant_id=tenant_id,
        run_name=run_name,
        period=period,
        findings_generated=findings_generated,
        runtime_seconds=round(runtime_seconds, 4),
        errors=errors or [],
        **extra,
    )


@contextmanager
def analysis_run_context(tenant_id: str, run_name: str, period: Optional[str] = None):
    """
    Yields a mutable stats dict; set stats["findings_generated"] (and any extra keys) inside the block.
    Exceptions are recorded and re-raised.
    """
    start = time.perf_counter()
    stats: dict[str, Any] = {"findings_generated": 0}
    errors: list[str] = []
    try:
        yield stats
    except Exception as e:
        errors.append(f"{type(e).__name__}: {e}")
        raise
    finally:
        extra = {k: v for k, v in stats.items() if k != "findings_generated"}
        log_analysis_run(
            tenant_id=tenant_id,
            run_name=run_name,
            findings_generated=int(stats.get("findings_generated") or 0),
            runtime_seconds=time.perf_counter() - start,
            period=period,
            errors=errors or None,
            **extra,
        )


def log_action_taken(tenant_id: str, finding_id: str, action_type: str, actor: Optional[str] = None) -> None:
    _structured("INFO", "action_taken", tenant_id=tenant_id, finding_id=finding_id, action_type=action_type, actor=actor)
