import asyncio

from menu_helper.dishes.images import ImageResolver
from menu_helper.images.config import ImageSearchConfig
from menu_helper.images.google_search import ImageQuotaExceededError, ImageSearchError
from menu_helper.ratelimit.config import ApiLimit, RateLimitConfig
from menu_helper.ratelimit.counter_store import MemoryCounterStore
from menu_helper.ratelimit.limiter import RateLimiter

from .fakes import FakeImageSearch

ENABLED = ImageSearchConfig(api_key="key", cx="cx", enabled=True)


def test_search_result_is_cached_and_reused(dish_cache, limiter):
    search = FakeImageSearch()
    resolver = ImageResolver(search, dish_cache, limiter, config=ENABLED)

    first = resolver.resolve("Pad Thai")
    assert first.image_url == "https://img.example/pad-thai/0.jpg"
    assert first.thumbnail_url == "https://img.example/pad-thai/0-thumb.jpg"
    assert len(first.all_image_urls) == 3
    assert not first.from_cache
    assert search.queries == ["Pad Thai food dish photo"]

    second = resolver.resolve("pad thai $12.99")
    assert second.from_cache
    assert second.image_url == first.image_url
    assert second.thumbnail_url == first.thumbnail_url
    assert len(search.queries) == 1


def test_cache_hit_consumes_no_quota(dish_cache, events):
    config = RateLimitConfig(limits={"google-search": ApiLimit(per_minute=1, per_day=1)})
    limiter = RateLimiter(MemoryCounterStore(), events, config)
    resolver = ImageResolver(FakeImageSearch(), dish_cache, limiter, events, config=ENABLED)

    resolver.resolve("Ramen")
    for _ in range(3):
        assert resolver.resolve("Ramen").from_cache


def test_rate_limit_denial_reports_quota(dish_cache, events):
    config = RateLimitConfig(limits={"google-search": ApiLimit(per_minute=0, per_day=10)})
    limiter = RateLimiter(MemoryCounterStore(), events, config)
    search = FakeImageSearch()
    resolver = ImageResolver(search, dish_cache, limiter, events, config=ENABLED)

    result = resolver.resolve("Ramen")
    assert result.image_url is None
    assert result.quota_exceeded
    assert search.queries == []


def test_provider_quota_error_reports_quota(dish_cache, limiter):
    resolver = ImageResolver(
        FakeImageSearch(error=ImageQuotaExceededError("429")), dish_cache, limiter, config=ENABLED
    )
    result = resolver.resolve("Ramen")
    assert result.image_url is None
    assert result.quota_exceeded


def test_provider_error_degrades_to_empty(dish_cache, limiter):
    resolver = ImageResolver(
        FakeImageSearch(error=ImageSearchError("boom")), dish_cache, limiter, config=ENABLED
    )
    result = resolver.resolve("Ramen")
    assert result.image_url is None
    assert not result.quota_exceeded
    assert dish_cache.find("Ramen") is None


def test_disabled_or_unconfigured_returns_empty(dish_cache, limiter):
    disabled = ImageResolver(
        FakeImageSearch(), dish_cache, limiter, config=ImageSearchConfig(enabled=False)
    )
    assert disabled.resolve("Ramen").image_url is None

    unconfigured = ImageResolver(None, dish_cache, limiter, config=ENABLED)
    assert unconfigured.resolve("Ramen").image_url is None


def test_resolve_many_keeps_every_name(dish_cache, limiter):
    search = FakeImageSearch()
    resolver = ImageResolver(search, dish_cache, limiter, config=ENABLED)
    names = ["Pho", "Ramen", "Laksa", "Udon", "Soba", "Bibimbap", "Tacos"]

    results = asyncio.run(resolver.resolve_many(names, batch_size=3, delay=0))

    assert list(results) == names
    assert all(r.image_url for r in results.values())
    assert len(search.queries) == 7
