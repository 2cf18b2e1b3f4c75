from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..analytics.events import EventLog
from .config import DEFAULT_RATE_LIMIT_CONFIG, ApiLimit, RateLimitConfig
from .counter_store import CounterStore

logger = logging.getLogger(__name__)

WINDOW = "window"
DAILY = "daily"


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    scope: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = RateDecision(allowed=True)


class RateLimiter:
    """
    Per-API minute-window and daily quotas held in a shared counter store.

    Both counters are checked and incremented in one store call, so
    concurrent callers can never jointly push a bucket past its limit.
    Store failures let the call through.
    """

    def __init__(
        self,
        store: CounterStore,
        events: EventLog | None = None,
        config: RateLimitConfig = DEFAULT_RATE_LIMIT_CONFIG,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._events = events or EventLog()
        self._config = config
        self._clock = clock

    def _keys(self, api_name: str, now: float) -> tuple[str, str]:
        bucket = int(now // self._config.window_seconds)
        day = datetime.fromtimestamp(now, tz=timezone.utc).date().isoformat()
        return f"rate:{api_name}:{bucket}", f"rate:{api_name}:daily:{day}"

    def check_and_increment(self, api_name: str) -> RateDecision:
        limit = self._config.limits.get(api_name)
        if limit is None:
            self._events.warning(f"No rate limit configured for API: {api_name}", api=api_name)
            return ALLOWED

        window_key, daily_key = self._keys(api_name, self._clock())
        try:
            counts = self._store.increment_if_below(
                [(window_key, limit.per_minute), (daily_key, limit.per_day)]
            )
            if counts is None:
                return self._deny(api_name, limit, window_key, daily_key)

            window_count, daily_count = counts
            if window_count == 1:
                self._store.expire(window_key, self._config.window_seconds)
            if daily_count == 1:
                self._store.expire(daily_key, self._config.daily_ttl_seconds)
        except Exception:
            logger.warning("Rate limiter store failed for %s, allowing call", api_name, exc_info=True)
            self._events.warning(f"Rate limiter unavailable for {api_name}, failing open", api=api_name)
            return ALLOWED

        self._check_for_alerts(api_name, daily_count, limit.per_day)
        return ALLOWED

    def _deny(
        self, api_name: str, limit: ApiLimit, window_key: str, daily_key: str
    ) -> RateDecision:
        window_count = self._store.get(window_key)
        if window_count >= limit.per_minute:
            self._events.rate_limit_hit(api_name, WINDOW, limit.per_minute, window_count)
            return RateDecision(allowed=False, scope=WINDOW)
        daily_count = self._store.get(daily_key)
        self._events.rate_limit_hit(api_name, DAILY, limit.per_day, daily_count)
        return RateDecision(allowed=False, scope=DAILY)

    def _check_for_alerts(self, api_name: str, daily_count: int, daily_limit: int) -> None:
        if daily_limit <= 0:
            return
        previous = daily_count - 1
        critical = self._config.critical_threshold * daily_limit
        warn = self._config.warn_threshold * daily_limit
        usage = round(daily_count / daily_limit * 100)

        if previous < critical <= daily_count:
            self._events.error(
                f"CRITICAL: {api_name} at {usage}% of daily limit ({daily_count}/{daily_limit})",
                api=api_name,
                usage=usage,
            )
        elif previous < warn <= daily_count:
            self._events.warning(
                f"WARNING: {api_name} at {usage}% of daily limit ({daily_count}/{daily_limit})",
                api=api_name,
                usage=usage,
            )

    def get_usage_stats(self) -> dict[str, dict[str, Any]]:
        now = self._clock()
        stats: dict[str, dict[str, Any]] = {}
        try:
            for api_name, limit in self._config.limits.items():
                window_key, daily_key = self._keys(api_name, now)
                window_usage = self._store.get(window_key)
                daily_usage = self._store.get(daily_key)
                stats[api_name] = {
                    "window_usage": window_usage,
                    "window_limit": limit.per_minute,
                    "window_seconds": self._config.window_seconds,
                    "daily_usage": daily_usage,
                    "daily_limit": limit.per_day,
                    "within_limits": window_usage < limit.per_minute
                    and daily_usage < limit.per_day,
                }
        except Exception:
            logger.warning("Could not read rate limit usage", exc_info=True)
            return {}
        return stats

    def reset_limits(self, api_name: str) -> None:
        """Clear the current window and daily buckets for *api_name*."""
        window_key, daily_key = self._keys(api_name, self._clock())
        self._store.delete(window_key, daily_key)
        self._events.info(f"Rate limits reset for {api_name}", api=api_name)
