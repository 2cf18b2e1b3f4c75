from menu_helper.dishes.descriptions import FALLBACK_DESCRIPTION, DescriptionGenerator
from menu_helper.ratelimit.config import ApiLimit, RateLimitConfig
from menu_helper.ratelimit.counter_store import MemoryCounterStore
from menu_helper.ratelimit.limiter import RateLimiter

from .fakes import FakeChatModel


def test_short_description_is_memoized(limiter):
    model = FakeChatModel('"Silky rice noodles with tamarind"')
    generator = DescriptionGenerator(model, limiter)

    assert generator.short_description("Pad Thai") == "Silky rice noodles with tamarind"
    assert generator.short_description("  pad thai ") == "Silky rice noodles with tamarind"
    assert len(model.calls) == 1


def test_detailed_description_passes_menu_context(limiter):
    model = FakeChatModel("Wok-fried noodles tossed with egg and peanuts.")
    generator = DescriptionGenerator(model, limiter)

    generator.detailed_description("Pad Thai", "rice noodles, tofu, crushed peanuts")
    prompt = model.calls[0]["messages"][-1]["content"]
    assert "rice noodles, tofu, crushed peanuts" in prompt

    # Different context, different memo entry
    generator.detailed_description("Pad Thai")
    assert len(model.calls) == 2


def test_failures_fall_back_and_are_not_memoized(limiter):
    model = FakeChatModel(error=RuntimeError("provider down"))
    generator = DescriptionGenerator(model, limiter)

    assert generator.short_description("Ramen") == FALLBACK_DESCRIPTION
    model.error = None
    model.replies = ["Rich broth with springy noodles"]
    assert generator.short_description("Ramen") == "Rich broth with springy noodles"


def test_unconfigured_model_falls_back(limiter):
    generator = DescriptionGenerator(None, limiter)
    assert generator.detailed_description("Ramen") == FALLBACK_DESCRIPTION


def test_rate_limited_falls_back(events):
    config = RateLimitConfig(limits={"groq-text": ApiLimit(per_minute=0, per_day=0)})
    limiter = RateLimiter(MemoryCounterStore(), events, config)
    model = FakeChatModel()
    generator = DescriptionGenerator(model, limiter, events)

    assert generator.short_description("Ramen") == FALLBACK_DESCRIPTION
    assert model.calls == []
