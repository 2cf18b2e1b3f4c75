from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..analytics.events import EventLog
from ..config import DEFAULT_APP_CONFIG, AppConfig
from ..storage.dish_cache import DishCacheStore
from .descriptions import FALLBACK_DESCRIPTION, DescriptionGenerator
from .images import ImageResolver
from .models import Dish, DishCacheEntry, DishMetadata, ExtractedDish, ImageResult

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    dishes: list[Dish] = field(default_factory=list)
    image_quota_exceeded: bool = False


def truncate_description(text: str, max_chars: int) -> str:
    text = text.strip()
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."


class DishEnricher:
    """Attaches an image and a short description to each extracted dish."""

    def __init__(
        self,
        images: ImageResolver,
        descriptions: DescriptionGenerator,
        cache: DishCacheStore,
        events: EventLog | None = None,
        config: AppConfig = DEFAULT_APP_CONFIG,
    ) -> None:
        self._images = images
        self._descriptions = descriptions
        self._cache = cache
        self._events = events or EventLog()
        self._config = config

    async def enrich(self, dishes: list[ExtractedDish]) -> EnrichmentResult:
        """Enrich all dishes concurrently; output order matches input order."""
        semaphore = asyncio.Semaphore(max(1, self._config.enrich_max_concurrency))

        async def run(dish: ExtractedDish) -> tuple[Dish, bool]:
            async with semaphore:
                return await asyncio.to_thread(self.enrich_one, dish)

        results = await asyncio.gather(*(run(dish) for dish in dishes))
        return EnrichmentResult(
            dishes=[dish for dish, _ in results],
            image_quota_exceeded=any(quota for _, quota in results),
        )

    def enrich_one(self, extracted: ExtractedDish) -> tuple[Dish, bool]:
        """Return the enriched dish and whether its image lookup hit a quota."""
        entry = self._lookup(extracted.name)
        if entry is not None and entry.image_urls and entry.description:
            return self._from_cache(extracted, entry), False

        image = self._images.resolve(extracted.name)
        description = self._describe(extracted, entry)
        return self._build(extracted, image, description), image.quota_exceeded

    def _lookup(self, name: str) -> DishCacheEntry | None:
        try:
            return self._cache.find(name)
        except Exception:
            logger.warning("Dish cache read failed for %r", name, exc_info=True)
            return None

    def _describe(self, extracted: ExtractedDish, entry: DishCacheEntry | None) -> str:
        if entry is not None and entry.description:
            return entry.description

        if extracted.original_description and extracted.original_description.strip():
            description = truncate_description(
                extracted.original_description, self._config.short_description_max_chars
            )
        else:
            description = self._descriptions.short_description(extracted.name)

        if description != FALLBACK_DESCRIPTION:
            try:
                self._cache.upsert(extracted.name, description=description)
            except Exception:
                logger.warning("Could not cache description for %r", extracted.name, exc_info=True)
        return description

    def _from_cache(self, extracted: ExtractedDish, entry: DishCacheEntry) -> Dish:
        return Dish(
            name=extracted.name,
            description=entry.description,
            original_description=extracted.original_description,
            image_url=entry.image_urls[0],
            metadata=DishMetadata(
                thumbnail_url=entry.metadata.get("thumbnail_url"),
                all_image_urls=list(entry.image_urls),
                from_cache=True,
            ),
        )

    def _build(self, extracted: ExtractedDish, image: ImageResult, description: str) -> Dish:
        return Dish(
            name=extracted.name,
            description=description,
            original_description=extracted.original_description,
            image_url=image.image_url or self._config.placeholder_image_url,
            metadata=DishMetadata(
                thumbnail_url=image.thumbnail_url,
                all_image_urls=list(image.all_image_urls),
                from_cache=image.from_cache,
            ),
        )
