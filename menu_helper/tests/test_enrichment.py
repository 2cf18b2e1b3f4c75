import asyncio

from menu_helper.config import AppConfig
from menu_helper.dishes.descriptions import FALLBACK_DESCRIPTION, DescriptionGenerator
from menu_helper.dishes.enrichment import DishEnricher, truncate_description
from menu_helper.dishes.images import ImageResolver
from menu_helper.dishes.models import ExtractedDish
from menu_helper.images.config import ImageSearchConfig
from menu_helper.images.google_search import ImageQuotaExceededError

from .fakes import FakeChatModel, FakeImageSearch

ENABLED = ImageSearchConfig(api_key="key", cx="cx", enabled=True)
CONFIG = AppConfig()


def _enricher(dish_cache, limiter, search=None, chat=None):
    images = ImageResolver(search or FakeImageSearch(), dish_cache, limiter, config=ENABLED)
    descriptions = DescriptionGenerator(chat or FakeChatModel("Smoky grilled flavors"), limiter)
    return DishEnricher(images, descriptions, dish_cache, config=CONFIG)


def test_truncate_description():
    assert truncate_description("short", 80) == "short"
    long = "x" * 100
    assert truncate_description(long, 80) == "x" * 77 + "..."


def test_enrich_preserves_order_and_fills_fields(dish_cache, limiter):
    enricher = _enricher(dish_cache, limiter)
    dishes = [
        ExtractedDish(name="Pho"),
        ExtractedDish(name="Banh Mi", original_description="Pork, pickles, " * 10),
        ExtractedDish(name="Spring Rolls"),
    ]
    result = asyncio.run(enricher.enrich(dishes))

    assert [d.name for d in result.dishes] == ["Pho", "Banh Mi", "Spring Rolls"]
    assert result.dishes[0].description == "Smoky grilled flavors"
    assert result.dishes[1].description.endswith("...")
    assert len(result.dishes[1].description) == 80
    assert result.dishes[1].original_description.startswith("Pork, pickles")
    assert result.dishes[0].image_url == "https://img.example/pho/0.jpg"
    assert not result.image_quota_exceeded


def test_full_cache_hit_makes_no_calls(dish_cache, limiter):
    dish_cache.upsert(
        "Pho",
        image_urls=["https://img/pho.jpg"],
        description="Aromatic beef noodle soup",
        metadata={"thumbnail_url": "https://img/pho-t.jpg"},
    )
    search = FakeImageSearch()
    chat = FakeChatModel()
    enricher = _enricher(dish_cache, limiter, search, chat)

    dish, quota = enricher.enrich_one(ExtractedDish(name="PHO"))

    assert dish.description == "Aromatic beef noodle soup"
    assert dish.image_url == "https://img/pho.jpg"
    assert dish.metadata.from_cache
    assert dish.metadata.thumbnail_url == "https://img/pho-t.jpg"
    assert not quota
    assert search.queries == []
    assert chat.calls == []


def test_descriptions_are_written_back_but_fallback_is_not(dish_cache, limiter):
    enricher = _enricher(dish_cache, limiter, chat=FakeChatModel("Crispy golden rolls"))
    enricher.enrich_one(ExtractedDish(name="Spring Rolls"))
    assert dish_cache.find("spring rolls").description == "Crispy golden rolls"

    failing = _enricher(dish_cache, limiter, chat=FakeChatModel(error=RuntimeError("down")))
    dish, _ = failing.enrich_one(ExtractedDish(name="Laksa"))
    assert dish.description == FALLBACK_DESCRIPTION
    assert dish_cache.find("laksa").description is None


def test_missing_image_uses_placeholder_and_flags_quota(dish_cache, limiter):
    search = FakeImageSearch(error=ImageQuotaExceededError("429"))
    enricher = _enricher(dish_cache, limiter, search=search)

    result = asyncio.run(enricher.enrich([ExtractedDish(name="Pho"), ExtractedDish(name="Laksa")]))

    assert all(d.image_url == CONFIG.placeholder_image_url for d in result.dishes)
    assert result.image_quota_exceeded
