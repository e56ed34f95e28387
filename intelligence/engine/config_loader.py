"""Load YAML config by environment (ENV=dev|prod). Env vars override file values."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .config import get_env

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"
_config: dict[str, Any] | None = None

_INT_KEYS = (
    "top_recommendations_n",
    "findings_limit",
    "quick_wins_n",
    "analysis_rate_limit_n",
    "action_log_max_per_key",
    "action_log_max_keys",
)
_STR_KEYS = ("log_level",)


def _load_yaml(path: Path) -> dict:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def get_config() -> dict[str, Any]:
    global _config
    if _config is not None:
        return _config
    path = CONFIG_DIR / f"{get_env()}.yaml"
    if path.exists():
        _config = _load_yaml(path)
    else:
        logger.debug("No config file at %s; using defaults", path)
        _config = {}
    # Override from env
    for key in _INT_KEYS:
        val = os.environ.get(key.upper())
        if val is None:
            continue
        try:
            _config[key] = int(val)
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", key.upper(), val)
    for key in _STR_KEYS:
        val = os.environ.get(key.upper())
        if val is not None:
            _config[key] = val
    return _config


def reset_config() -> None:
    """Drop the cached config (tests, env changes)."""
    global _config
    _config = None


def get(key: str, default: Any = None) -> Any:
    return get_config().get(key, default)
