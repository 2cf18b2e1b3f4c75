from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any

_DEFAULT_MAX_EVENTS = 1000


class EventLog:
    """
    Leveled event sink passed into each component.

    Every event goes to the standard logger and into a bounded in-memory
    buffer, so tests and the analytics endpoint can read structured events
    instead of parsing log text.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        max_events: int = _DEFAULT_MAX_EVENTS,
    ) -> None:
        self._logger = logger or logging.getLogger("menu_helper")
        self._events: deque[dict[str, Any]] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def record(self, event_type: str, level: int, message: str, **data: Any) -> None:
        event = {
            "type": event_type,
            "level": logging.getLevelName(level).lower(),
            "message": message,
            "timestamp": time.time(),
            **data,
        }
        with self._lock:
            self._events.append(event)
        self._logger.log(level, message, extra={"event": event})

    def info(self, message: str, **data: Any) -> None:
        self.record("info", logging.INFO, message, **data)

    def warning(self, message: str, **data: Any) -> None:
        self.record("warning", logging.WARNING, message, **data)

    def error(self, message: str, exc: BaseException | None = None, **data: Any) -> None:
        if exc is not None:
            data["error"] = f"{type(exc).__name__}: {exc}"
        self.record("error", logging.ERROR, message, **data)

    def rate_limit_hit(self, api: str, scope: str, limit: int, current: int) -> None:
        self.record(
            "rate_limit_hit",
            logging.WARNING,
            f"Rate limit hit for {api} ({scope}: {current}/{limit})",
            api=api,
            scope=scope,
            limit=limit,
            current=current,
        )

    def api_call(
        self,
        api: str,
        success: bool,
        response_time_ms: float | None = None,
        **data: Any,
    ) -> None:
        self.record(
            "api_call",
            logging.INFO if success else logging.WARNING,
            f"{api} API call {'succeeded' if success else 'failed'}",
            api=api,
            success=success,
            response_time_ms=response_time_ms,
            **data,
        )

    def cache(self, tier: str, hit: bool, key: str) -> None:
        self.record(
            "cache",
            logging.DEBUG,
            f"{tier} cache {'hit' if hit else 'miss'} for {key!r}",
            tier=tier,
            hit=hit,
            key=key,
        )

    def get_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            events = list(self._events)
        if event_type is None:
            return events
        return [e for e in events if e["type"] == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 1)
