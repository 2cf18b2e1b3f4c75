from __future__ import annotations

import os
from dataclasses import dataclass, field

from ..config import load_environment

load_environment()

GROQ_VISION = "groq-vision"
GROQ_TEXT = "groq-text"
GOOGLE_VISION = "google-vision"
GOOGLE_SEARCH = "google-search"


@dataclass(frozen=True)
class ApiLimit:
    per_minute: int
    per_day: int


def _limit_from_env(api_name: str, default: ApiLimit) -> ApiLimit:
    """Read ``RATE_LIMIT_<API>="<per_minute>/<per_day>"`` if present."""
    raw = os.getenv(f"RATE_LIMIT_{api_name.upper().replace('-', '_')}")
    if not raw:
        return default
    try:
        per_minute, per_day = (int(part) for part in raw.split("/", 1))
    except ValueError:
        return default
    return ApiLimit(per_minute=per_minute, per_day=per_day)


def _default_limits() -> dict[str, ApiLimit]:
    defaults = {
        GROQ_VISION: ApiLimit(per_minute=20, per_day=500),
        GROQ_TEXT: ApiLimit(per_minute=60, per_day=2000),
        GOOGLE_VISION: ApiLimit(per_minute=100, per_day=5000),
        GOOGLE_SEARCH: ApiLimit(per_minute=60, per_day=1000),
    }
    return {name: _limit_from_env(name, limit) for name, limit in defaults.items()}


@dataclass(frozen=True)
class RateLimitConfig:
    limits: dict[str, ApiLimit] = field(default_factory=_default_limits)
    window_seconds: int = 60
    daily_ttl_seconds: int = 86400
    warn_threshold: float = 0.8
    critical_threshold: float = 0.9
    store: str = os.getenv("RATE_LIMIT_STORE", "memory")


DEFAULT_RATE_LIMIT_CONFIG = RateLimitConfig()
