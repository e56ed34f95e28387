"""Engine config from environment."""
from __future__ import annotations

import os
from typing import List


def get_env() -> str:
    return os.environ.get("ENV", "dev")


def get_cors_origins() -> List[str]:
    raw = os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
    return [x.strip() for x in raw.split(",") if x.strip()]
