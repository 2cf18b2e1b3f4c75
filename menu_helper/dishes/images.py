from __future__ import annotations

import asyncio
import logging
import time

from ..analytics.events import EventLog, elapsed_ms
from ..images.config import DEFAULT_IMAGE_SEARCH_CONFIG, ImageSearchConfig
from ..images.google_search import ImageQuotaExceededError, ImageSearchProvider
from ..ratelimit.config import GOOGLE_SEARCH
from ..ratelimit.limiter import RateLimiter
from ..storage.dish_cache import DishCacheStore
from .models import ImageResult
from .normalize import normalize_dish_name

logger = logging.getLogger(__name__)

IMAGE_SOURCE = "google"


class ImageResolver:
    """
    Finds a photo for a dish, cache first.

    ``resolve`` never raises. A cache hit costs no quota; a miss runs one
    rate-limited search and writes every candidate back to the cache.
    """

    def __init__(
        self,
        provider: ImageSearchProvider | None,
        cache: DishCacheStore,
        limiter: RateLimiter,
        events: EventLog | None = None,
        config: ImageSearchConfig = DEFAULT_IMAGE_SEARCH_CONFIG,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._limiter = limiter
        self._events = events or EventLog()
        self._config = config

    def resolve(self, dish_name: str) -> ImageResult:
        key = normalize_dish_name(dish_name)
        if not key:
            return ImageResult.empty()

        cached = self._cached_result(dish_name)
        self._events.cache("dish", cached is not None, key)
        if cached is not None:
            return cached

        if not self._config.enabled or self._provider is None:
            return ImageResult.empty()

        if not self._limiter.check_and_increment(GOOGLE_SEARCH):
            logger.info("Image search rate limited for %r", dish_name)
            return ImageResult.empty(quota_exceeded=True)

        start = time.time()
        try:
            candidates = self._provider.search(
                f"{dish_name.strip()}{self._config.query_suffix}", self._config.num
            )
        except ImageQuotaExceededError as exc:
            self._events.api_call(GOOGLE_SEARCH, False, elapsed_ms(start), error=str(exc))
            self._events.warning("Image search provider quota exhausted", api=GOOGLE_SEARCH)
            return ImageResult.empty(quota_exceeded=True)
        except Exception as exc:
            self._events.api_call(GOOGLE_SEARCH, False, elapsed_ms(start), error=str(exc))
            logger.warning("Image search failed for %r", dish_name, exc_info=True)
            return ImageResult.empty()
        self._events.api_call(GOOGLE_SEARCH, True, elapsed_ms(start))

        if not candidates:
            return ImageResult.empty()

        primary = candidates[0]
        links = tuple(c.link for c in candidates)
        self._store(dish_name, links, primary.thumbnail)
        return ImageResult(
            image_url=primary.link,
            thumbnail_url=primary.thumbnail,
            all_image_urls=links,
        )

    def _cached_result(self, dish_name: str) -> ImageResult | None:
        try:
            entry = self._cache.find(dish_name)
        except Exception:
            logger.warning("Dish cache read failed for %r", dish_name, exc_info=True)
            return None
        if entry is None or not entry.image_urls:
            return None
        return ImageResult(
            image_url=entry.image_urls[0],
            thumbnail_url=entry.metadata.get("thumbnail_url"),
            all_image_urls=entry.image_urls,
            from_cache=True,
        )

    def _store(self, dish_name: str, links: tuple[str, ...], thumbnail: str | None) -> None:
        try:
            self._cache.upsert(
                dish_name,
                image_urls=list(links),
                source=IMAGE_SOURCE,
                metadata={"thumbnail_url": thumbnail},
            )
        except Exception:
            logger.warning("Could not cache images for %r", dish_name, exc_info=True)

    async def resolve_many(
        self,
        dish_names: list[str],
        batch_size: int = 5,
        delay: float = 0.1,
    ) -> dict[str, ImageResult]:
        """Resolve names in concurrent batches, pausing briefly between batches."""
        results: dict[str, ImageResult] = {}
        for offset in range(0, len(dish_names), batch_size):
            if offset:
                await asyncio.sleep(delay)
            batch = dish_names[offset:offset + batch_size]
            resolved = await asyncio.gather(
                *(asyncio.to_thread(self.resolve, name) for name in batch)
            )
            results.update(zip(batch, resolved))
        return results
