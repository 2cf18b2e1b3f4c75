from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import func, select

from menu_helper.analytics.events import EventLog
from menu_helper.ratelimit.config import ApiLimit, RateLimitConfig
from menu_helper.ratelimit.counter_store import MemoryCounterStore, SQLCounterStore
from menu_helper.ratelimit.limiter import RateLimiter
from menu_helper.storage.models import RateCounterRow

from .fakes import FakeClock


def _limiter(per_minute=3, per_day=100, store=None, clock=None, events=None):
    config = RateLimitConfig(limits={"test-api": ApiLimit(per_minute=per_minute, per_day=per_day)})
    return RateLimiter(
        store if store is not None else MemoryCounterStore(),
        events if events is not None else EventLog(),
        config,
        clock if clock is not None else FakeClock(),
    )


class BrokenStore:
    def get(self, key):
        raise ConnectionError("store down")

    def increment_if_below(self, limits):
        raise ConnectionError("store down")

    def expire(self, key, seconds):
        raise ConnectionError("store down")

    def delete(self, *keys):
        raise ConnectionError("store down")


def test_allows_until_window_limit():
    limiter = _limiter(per_minute=3)
    decisions = [limiter.check_and_increment("test-api") for _ in range(4)]
    assert [bool(d) for d in decisions] == [True, True, True, False]
    assert decisions[-1].scope == "window"


def test_concurrent_callers_never_exceed_limit():
    limiter = _limiter(per_minute=3)
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: bool(limiter.check_and_increment("test-api")), range(4)))
    assert results.count(True) == 3


def test_window_rolls_over():
    clock = FakeClock(now=1_700_000_040.0)
    limiter = _limiter(per_minute=1, clock=clock)
    assert limiter.check_and_increment("test-api")
    assert not limiter.check_and_increment("test-api")
    clock.advance(60)
    assert limiter.check_and_increment("test-api")


def test_daily_limit_denies_and_leaves_counters_untouched():
    clock = FakeClock()
    events = EventLog()
    limiter = _limiter(per_minute=10, per_day=2, clock=clock, events=events)
    assert limiter.check_and_increment("test-api")
    clock.advance(60)
    assert limiter.check_and_increment("test-api")
    clock.advance(60)

    decision = limiter.check_and_increment("test-api")
    assert not decision
    assert decision.scope == "daily"

    stats = limiter.get_usage_stats()["test-api"]
    assert stats["window_usage"] == 0
    assert stats["daily_usage"] == 2
    assert stats["within_limits"] is False
    assert events.get_events("rate_limit_hit")[0]["scope"] == "daily"


def test_unknown_api_is_allowed_with_warning():
    events = EventLog()
    limiter = _limiter(events=events)
    assert limiter.check_and_increment("mystery-api")
    assert any("mystery-api" in e["message"] for e in events.get_events("warning"))


def test_store_failure_fails_open():
    events = EventLog()
    limiter = _limiter(store=BrokenStore(), events=events)
    assert limiter.check_and_increment("test-api")
    assert events.get_events("warning")
    assert limiter.get_usage_stats() == {}


def test_threshold_alerts_fire_once_when_crossed():
    clock = FakeClock()
    events = EventLog()
    limiter = _limiter(per_minute=100, per_day=10, clock=clock, events=events)
    for _ in range(10):
        limiter.check_and_increment("test-api")

    warnings = [e for e in events.get_events("warning") if "daily limit" in e["message"]]
    errors = [e for e in events.get_events("error") if "daily limit" in e["message"]]
    assert len(warnings) == 1
    assert warnings[0]["usage"] == 80
    assert len(errors) == 1
    assert errors[0]["usage"] == 90


def test_first_increment_sets_expiry():
    clock = FakeClock(now=1_700_000_040.0)
    store = MemoryCounterStore(clock=clock)
    limiter = _limiter(per_minute=5, store=store, clock=clock)
    limiter.check_and_increment("test-api")
    limiter.check_and_increment("test-api")

    window_key = f"rate:test-api:{int(clock.now // 60)}"
    assert store.get(window_key) == 2
    clock.advance(61)
    assert store.get(window_key) == 0


def test_reset_limits_clears_buckets():
    limiter = _limiter(per_minute=1)
    assert limiter.check_and_increment("test-api")
    assert not limiter.check_and_increment("test-api")
    limiter.reset_limits("test-api")
    assert limiter.check_and_increment("test-api")


def test_usage_stats_shape():
    limiter = _limiter(per_minute=3, per_day=50)
    limiter.check_and_increment("test-api")
    stats = limiter.get_usage_stats()
    assert stats["test-api"] == {
        "window_usage": 1,
        "window_limit": 3,
        "window_seconds": 60,
        "daily_usage": 1,
        "daily_limit": 50,
        "within_limits": True,
    }


def test_sql_store_enforces_limits_atomically(session_factory):
    clock = FakeClock(now=1_700_000_040.0)
    store = SQLCounterStore(session_factory, clock=clock)
    limiter = _limiter(per_minute=2, per_day=100, store=store, clock=clock)

    assert limiter.check_and_increment("test-api")
    assert limiter.check_and_increment("test-api")
    assert not limiter.check_and_increment("test-api")

    # Denial must not have bumped the daily bucket
    assert limiter.get_usage_stats()["test-api"]["daily_usage"] == 2

    clock.advance(60)
    assert limiter.check_and_increment("test-api")


def test_sql_store_restarts_expired_bucket(session_factory):
    clock = FakeClock()
    store = SQLCounterStore(session_factory, clock=clock)
    assert store.increment_if_below([("k", 1)]) == [1]
    store.expire("k", 30)
    assert store.increment_if_below([("k", 1)]) is None
    clock.advance(31)
    assert store.get("k") == 0
    assert store.increment_if_below([("k", 1)]) == [1]


def test_sql_store_zero_limit_denies(session_factory):
    store = SQLCounterStore(session_factory)
    assert store.increment_if_below([("a", 5), ("b", 0)]) is None
    assert store.get("a") == 0


def test_memory_store_drops_old_window_buckets():
    clock = FakeClock()
    store = MemoryCounterStore(clock=clock)
    limiter = _limiter(per_minute=5, per_day=10_000, store=store, clock=clock)
    for _ in range(1440):
        assert limiter.check_and_increment("test-api")
        clock.advance(60)

    # One live window bucket plus at most two daily buckets
    assert len(store) <= 3


def test_sql_store_drops_old_window_buckets(session_factory):
    clock = FakeClock()
    store = SQLCounterStore(session_factory, clock=clock)
    limiter = _limiter(per_minute=5, per_day=10_000, store=store, clock=clock)
    for _ in range(300):
        assert limiter.check_and_increment("test-api")
        clock.advance(60)

    with session_factory() as session:
        rows = session.scalar(select(func.count()).select_from(RateCounterRow))
    assert rows <= 3


def test_sql_store_concurrent_callers_never_exceed_limit(session_factory):
    for trial in range(5):
        clock = FakeClock(now=1_700_000_040.0 + trial * 3600)
        limiter = _limiter(per_minute=3, store=SQLCounterStore(session_factory, clock=clock), clock=clock)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: bool(limiter.check_and_increment("test-api")), range(8)))
        assert results.count(True) == 3
