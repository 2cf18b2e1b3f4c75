from __future__ import annotations

import logging
import time

from ..analytics.events import EventLog, elapsed_ms
from ..llm.base import ChatModel
from ..ratelimit.config import GROQ_TEXT
from ..ratelimit.limiter import RateLimiter
from .memo import LRUCache, make_key

logger = logging.getLogger(__name__)

FALLBACK_DESCRIPTION = "Description temporarily unavailable"

SHORT_SYSTEM_PROMPT = (
    "You are a culinary expert writing menu blurbs. "
    "Reply with a single phrase of 4 to 8 words that evokes the dish's main "
    "ingredients and flavor. Do not repeat the dish name. No quotes, no trailing period."
)

DETAILED_SYSTEM_PROMPT = (
    "You are a culinary expert creating concise, appetizing dish descriptions. "
    "Describe the dish's key ingredients, flavor profile and cooking style in 1 to 2 sentences. "
    "Avoid marketing language and technical jargon. "
    "Only return the description text with no additional commentary."
)

_SHORT_MAX_TOKENS = 40
_DETAILED_MAX_TOKENS = 150


class DescriptionGenerator:
    """
    Short and detailed dish descriptions from the chat model.

    Never raises; any failure returns ``FALLBACK_DESCRIPTION``. Only real
    descriptions are memoized.
    """

    def __init__(
        self,
        chat_model: ChatModel | None,
        limiter: RateLimiter,
        events: EventLog | None = None,
        memo: LRUCache | None = None,
    ) -> None:
        self._chat_model = chat_model
        self._limiter = limiter
        self._events = events or EventLog()
        self._memo = memo if memo is not None else LRUCache()

    def short_description(self, name: str) -> str:
        messages = [
            {"role": "system", "content": SHORT_SYSTEM_PROMPT},
            {"role": "user", "content": f'Dish: "{name.strip()}"'},
        ]
        return self._generate("short", name, None, messages, _SHORT_MAX_TOKENS, 0.7)

    def detailed_description(self, name: str, original_description: str | None = None) -> str:
        context = (original_description or "").strip() or None
        prompt = f'Describe the dish "{name.strip()}".'
        if context:
            prompt += f'\nThe menu describes it as: "{context}". Stay consistent with that.'
        messages = [
            {"role": "system", "content": DETAILED_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        return self._generate("detailed", name, context, messages, _DETAILED_MAX_TOKENS, 0.7)

    def _generate(
        self,
        kind: str,
        name: str,
        context: str | None,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        if not name or not name.strip():
            return FALLBACK_DESCRIPTION

        key = make_key("description", kind, name.strip().lower(), context or "")
        cached = self._memo.get(key)
        self._events.cache("description-memo", cached is not None, key)
        if cached is not None:
            return cached

        if self._chat_model is None:
            return FALLBACK_DESCRIPTION
        if not self._limiter.check_and_increment(GROQ_TEXT):
            logger.info("Rate limit reached for %s, skipping %s description", GROQ_TEXT, kind)
            return FALLBACK_DESCRIPTION

        start = time.time()
        try:
            text = self._chat_model.complete(messages, max_tokens=max_tokens, temperature=temperature)
        except Exception as exc:
            self._events.api_call(GROQ_TEXT, False, elapsed_ms(start), error=str(exc))
            logger.warning("Description generation failed for %r", name, exc_info=True)
            return FALLBACK_DESCRIPTION
        self._events.api_call(GROQ_TEXT, True, elapsed_ms(start))

        text = text.strip().strip('"').strip()
        if not text:
            return FALLBACK_DESCRIPTION
        self._memo.set(key, text)
        return text
