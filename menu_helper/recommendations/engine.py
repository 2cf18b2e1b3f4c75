from __future__ import annotations

import json
import logging
import time
from typing import Any

from ..analytics.events import EventLog, elapsed_ms
from ..dishes.models import Dish
from ..dishes.normalize import dish_match_key
from ..llm.base import ChatModel
from ..ratelimit.config import GROQ_TEXT
from ..ratelimit.limiter import RateLimiter
from .models import PreferencesPayload, Recommendation

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3
DEFAULT_SCORE = 75
_MAX_TOKENS = 800

SYSTEM_PROMPT = """You are a culinary recommendation expert. Your task is to select dishes from a provided menu that best match the user's food preferences, dietary restrictions, and taste preferences.

CRITICAL INSTRUCTIONS:
1. You MUST ONLY select dishes from the exact menu list provided to you
2. Do NOT invent or suggest dishes that are not in the provided list
3. Do NOT recommend dishes that contain ingredients the user is ALLERGIC to - this is a safety requirement
4. Avoid dishes with ingredients the user has listed as disliked
5. Prioritize dishes that match the user's dietary preferences (vegetarian, vegan, etc.)
6. Favor dishes from cuisines the user enjoys
7. Consider flavor preferences when making selections
8. Return exactly 3 dish recommendations, ranked by match quality
9. For each dish, provide a SPECIFIC, CONCISE reason (1-2 sentences) explaining the match
10. Match reasons should ONLY reference preferences the user explicitly mentioned
11. Higher scoring dishes should have clearer connections to stated preferences"""

_RESPONSE_FORMAT = """From ONLY this menu above, recommend the 3 dishes that would best match my preferences.

Format your response as a JSON object with a "recommendations" array containing ONLY dishes from this menu.
Each recommendation should include:
- name: The exact dish name from the menu
- matchScore: A number between 1-100 indicating how well this dish matches my preferences
- matchReason: A SPECIFIC, CONCISE reason (1-2 sentences) why this dish matches my preferences

IMPORTANT:
- You can ONLY recommend dishes from the menu I provided
- Do NOT recommend dishes that may contain my allergens
- Rank dishes by match quality (best match first)

Only return the JSON object with no additional text."""

OPEN_PREFERENCES = "I'm open to trying various dishes."


class RecommendationError(Exception):
    """Base class for failures surfaced to the caller."""


class NoDishesError(RecommendationError):
    pass


class RecommendationUnavailableError(RecommendationError):
    pass


class RateLimitedError(RecommendationError):
    pass


class RecommendationFailedError(RecommendationError):
    pass


def build_preference_text(preferences: PreferencesPayload | None) -> str:
    if preferences is None:
        return OPEN_PREFERENCES

    lines = []
    if preferences.dietary:
        lines.append(f"Dietary preferences: {', '.join(preferences.dietary)}.")
    if preferences.cuisines:
        lines.append(f"Favorite cuisines: {', '.join(preferences.cuisines)}.")
    if preferences.flavors:
        lines.append(f"Flavor preferences: {', '.join(preferences.flavors)}.")
    if preferences.allergies:
        lines.append(
            f"ALLERGIES (MUST AVOID - hard exclusion): {', '.join(preferences.allergies)}."
        )
    if preferences.disliked_ingredients:
        lines.append(
            f"Disliked ingredients (avoid if possible): {', '.join(preferences.disliked_ingredients)}."
        )
    return "\n".join(lines) or OPEN_PREFERENCES


def build_user_message(dishes: list[Dish], preferences: PreferencesPayload | None) -> str:
    menu = [{"name": d.name, "description": d.description or ""} for d in dishes]
    return (
        f"Here is the menu:\n\n{json.dumps(menu, indent=2, ensure_ascii=False)}\n\n"
        f"My food preferences:\n{build_preference_text(preferences)}\n\n"
        f"{_RESPONSE_FORMAT}"
    )


def _coerce_score(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        score = round(float(value))
    except (TypeError, ValueError):
        return None
    return max(0, min(100, score))


def validate_recommendations(raw: list[Any], dishes: list[Dish]) -> list[Recommendation]:
    """
    Keep only entries naming a real candidate dish, first occurrence wins,
    at most three. Name, description and image always come from the
    candidate, never from the model.
    """
    by_key: dict[str, Dish] = {}
    for dish in dishes:
        by_key.setdefault(dish_match_key(dish.name), dish)

    results: list[Recommendation] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        key = dish_match_key(item["name"])
        dish = by_key.get(key)
        if dish is None:
            logger.info("Dropping recommendation %r, not on the menu", item["name"])
            continue
        if key in seen:
            continue
        seen.add(key)

        score = _coerce_score(item.get("matchScore"))
        if score is None:
            score = DEFAULT_SCORE
        reason = item.get("matchReason")
        if not isinstance(reason, str) or not reason.strip():
            reason = f"This dish scores {score}/100 for your preferences."
        results.append(
            Recommendation(
                name=dish.name,
                description=dish.description,
                image_url=dish.image_url,
                match_score=score,
                match_reason=reason.strip(),
            )
        )
        if len(results) == MAX_RECOMMENDATIONS:
            break
    return results


class RecommendationEngine:
    """
    Ranks menu dishes against stored preferences with the chat model.

    Unlike the other components this one raises: a hallucinated or unsafe
    recommendation is worse than none.
    """

    def __init__(
        self,
        chat_model: ChatModel | None,
        limiter: RateLimiter,
        events: EventLog | None = None,
    ) -> None:
        self._chat_model = chat_model
        self._limiter = limiter
        self._events = events or EventLog()

    def recommend(
        self, dishes: list[Dish], preferences: PreferencesPayload | None
    ) -> list[Recommendation]:
        if not dishes:
            raise NoDishesError("No dishes provided for recommendations")
        if self._chat_model is None:
            raise RecommendationUnavailableError("Recommendation model is not configured")
        if not self._limiter.check_and_increment(GROQ_TEXT):
            raise RateLimitedError("Rate limit reached for AI recommendations")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_message(dishes, preferences)},
        ]
        start = time.time()
        try:
            content = self._chat_model.complete(
                messages, max_tokens=_MAX_TOKENS, temperature=0.7, json_mode=True
            )
        except Exception as exc:
            self._events.api_call(GROQ_TEXT, False, elapsed_ms(start), error=str(exc))
            logger.warning("Recommendation call failed", exc_info=True)
            if getattr(exc, "status_code", None) == 429:
                raise RateLimitedError("Provider rate limit reached for AI recommendations") from exc
            raise RecommendationFailedError(f"Failed to generate dish recommendations: {exc}") from exc
        self._events.api_call(GROQ_TEXT, True, elapsed_ms(start))

        if not content:
            raise RecommendationFailedError("Recommendation model returned an empty response")
        try:
            parsed = json.loads(content)
        except ValueError as exc:
            raise RecommendationFailedError("Failed to parse dish recommendations") from exc

        raw = parsed.get("recommendations") if isinstance(parsed, dict) else None
        if not isinstance(raw, list):
            raise RecommendationFailedError("Reply did not contain a recommendations list")

        recommendations = validate_recommendations(raw, dishes)
        self._events.info(
            f"Validated {len(recommendations)} of {len(raw)} recommendations against the menu",
            returned=len(raw),
            kept=len(recommendations),
        )
        return recommendations
