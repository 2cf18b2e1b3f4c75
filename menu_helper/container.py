"""
Composition root: builds every component once and wires collaborators.

Any external collaborator may be passed in explicitly (tests pass fakes);
otherwise it is built from configuration, or left as ``None`` when its
credentials are missing so the owning component degrades.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .analytics.events import EventLog
from .config import DEFAULT_APP_CONFIG, AppConfig
from .dishes.descriptions import DescriptionGenerator
from .dishes.enrichment import DishEnricher
from .dishes.images import ImageResolver
from .dishes.memo import LRUCache
from .images.config import DEFAULT_IMAGE_SEARCH_CONFIG, ImageSearchConfig
from .images.google_search import GoogleImageSearch
from .llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from .llm.groq_client import GroqChatModel, GroqVisionModel
from .ratelimit.config import DEFAULT_RATE_LIMIT_CONFIG, RateLimitConfig
from .ratelimit.counter_store import CounterStore, MemoryCounterStore, SQLCounterStore
from .ratelimit.limiter import RateLimiter
from .recommendations.engine import RecommendationEngine
from .storage.config import DEFAULT_STORAGE_CONFIG, StorageConfig
from .storage.db import SessionFactory, init_db, make_engine, make_session_factory
from .storage.dish_cache import DishCacheStore
from .storage.preferences import PreferenceRepository
from .vision.config import DEFAULT_VISION_CONFIG, VisionConfig
from .vision.extractor import VisionExtractor
from .vision.ocr import GoogleVisionOCR

logger = logging.getLogger(__name__)

_AUTO: Any = object()


@dataclass
class Services:
    config: AppConfig
    events: EventLog
    limiter: RateLimiter
    memo: LRUCache
    dish_cache: DishCacheStore
    preferences: PreferenceRepository
    vision: VisionExtractor
    images: ImageResolver
    descriptions: DescriptionGenerator
    enricher: DishEnricher
    recommender: RecommendationEngine


def _counter_store(config: RateLimitConfig, session_factory: SessionFactory) -> CounterStore:
    if config.store == "sql":
        return SQLCounterStore(session_factory)
    if config.store != "memory":
        logger.warning("Unknown RATE_LIMIT_STORE %r, using in-memory counters", config.store)
    return MemoryCounterStore()


def build_services(
    *,
    session_factory: SessionFactory | None = None,
    counter_store: CounterStore | None = None,
    chat_model: Any = _AUTO,
    vision_model: Any = _AUTO,
    ocr: Any = _AUTO,
    image_search: Any = _AUTO,
    events: EventLog | None = None,
    app_config: AppConfig = DEFAULT_APP_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    vision_config: VisionConfig = DEFAULT_VISION_CONFIG,
    image_config: ImageSearchConfig = DEFAULT_IMAGE_SEARCH_CONFIG,
    storage_config: StorageConfig = DEFAULT_STORAGE_CONFIG,
    rate_config: RateLimitConfig = DEFAULT_RATE_LIMIT_CONFIG,
) -> Services:
    if session_factory is None:
        engine = make_engine(storage_config)
        init_db(engine)
        session_factory = make_session_factory(engine)

    if chat_model is _AUTO:
        chat_model = GroqChatModel(llm_config) if llm_config.configured else None
    if vision_model is _AUTO:
        vision_model = GroqVisionModel(llm_config) if llm_config.configured else None
    if ocr is _AUTO:
        ocr = GoogleVisionOCR(vision_config) if vision_config.ocr_api_key else None
    if image_search is _AUTO:
        image_search = GoogleImageSearch(image_config) if image_config.configured else None

    events = events or EventLog()
    limiter = RateLimiter(
        counter_store or _counter_store(rate_config, session_factory),
        events,
        rate_config,
    )
    memo = LRUCache(app_config.memo_max_size)
    dish_cache = DishCacheStore(session_factory, storage_config.cache_ttl_days)

    images = ImageResolver(image_search, dish_cache, limiter, events, image_config)
    descriptions = DescriptionGenerator(chat_model, limiter, events, memo)

    for name, handle in (
        ("chat model", chat_model),
        ("vision model", vision_model),
        ("OCR", ocr),
        ("image search", image_search),
    ):
        if handle is None:
            logger.info("%s not configured; dependent features will degrade", name)

    return Services(
        config=app_config,
        events=events,
        limiter=limiter,
        memo=memo,
        dish_cache=dish_cache,
        preferences=PreferenceRepository(session_factory),
        vision=VisionExtractor(vision_model, ocr, limiter, events, vision_config, memo),
        images=images,
        descriptions=descriptions,
        enricher=DishEnricher(images, descriptions, dish_cache, events, app_config),
        recommender=RecommendationEngine(chat_model, limiter, events),
    )
