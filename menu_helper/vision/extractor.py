from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any

from ..analytics.events import EventLog, elapsed_ms
from ..dishes.memo import LRUCache
from ..dishes.models import ExtractedDish
from ..dishes.normalize import dish_match_key
from ..llm.base import VisionModel
from ..ratelimit.config import GOOGLE_VISION, GROQ_VISION
from ..ratelimit.limiter import RateLimiter
from .config import DEFAULT_VISION_CONFIG, VisionConfig
from .ocr import OCRProvider

logger = logging.getLogger(__name__)

UNSUPPORTED_IMAGE_MESSAGE = "Unsupported image format. Please upload a PNG, JPEG, GIF, or WebP image."

SOURCE_VISION = "vision-llm"
SOURCE_OCR = "ocr"
SOURCE_NONE = "none"

SYSTEM_PROMPT = (
    "You are a precise menu reader and translator. Decide whether the photo shows "
    "a restaurant menu, then extract every dish you can clearly read. ALWAYS translate "
    "dish names to {language}. Combine food-type categories with their items "
    "(Toast, Salad, Bowl, etc). IGNORE structural section headers "
    "(Main Dish, Appetizers, Sides, Starters, Mains, etc)."
)

USER_PROMPT = """Extract the dishes from this menu.

IMPORTANT: If the menu is in another language, TRANSLATE every dish name to {language}. Use the common {language} name for the dish.

Examples of translation:
- "宫保鸡丁" -> "Kung Pao Chicken"
- "麻婆豆腐" -> "Mapo Tofu"
- "担担面" -> "Dan Dan Noodles"
- "Pad Thai" -> "Pad Thai" (already a common name)

APPEND these food-type categories to the items listed under them:
Toast, Salad, Bowl, Sandwich, Burger, Wrap, Pizza, Pasta, Soup, Taco, Curry, Steak, Smoothie, Coffee, Juice

Example: "Avocado" under "TOAST" -> "Avocado Toast"

IGNORE these section headers (never append them, never list them as dishes):
Main Dish, Mains, Appetizers, Starters, Sides, Entrees, Specials, Chef's Picks, Favorites, Small Plates, Large Plates, Breakfast, Lunch, Dinner

If a dish has a description printed under or next to it, copy it (translated) into "description"; otherwise use null.

Respond with JSON only:
{{
  "isMenu": true,
  "dishes": [{{"name": "Dish Name", "description": "printed description or null"}}]
}}

If the photo is not a menu, respond with {{"isMenu": false, "dishes": []}}."""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_UNSUPPORTED_HINTS = ("unsupported image", "image format", "['png', 'jpeg', 'gif', 'webp']")

_MIN_WORDS = 2
_MAX_WORDS = 10
_MAX_LINE_CHARS = 50


class UnsupportedImageError(ValueError):
    def __init__(self, message: str = UNSUPPORTED_IMAGE_MESSAGE) -> None:
        super().__init__(message)


@dataclass(frozen=True)
class MenuExtraction:
    dishes: tuple[ExtractedDish, ...] = ()
    is_menu: bool = False
    source: str = SOURCE_NONE


def detect_image_type(image: bytes) -> str | None:
    """Return the MIME type from the file's magic bytes, or ``None``."""
    if image.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(image) >= 12 and image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return None


def _first_json_object(text: str) -> Any:
    cleaned = _FENCE_RE.sub("", text.strip())
    start = cleaned.find("{")
    if start < 0:
        raise ValueError("no JSON object in reply")
    obj, _ = json.JSONDecoder().raw_decode(cleaned[start:])
    return obj


def _clean_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "n/a"):
        return None
    return value


def parse_menu_reply(reply: str) -> tuple[list[ExtractedDish], bool] | None:
    """
    Parse the vision model's reply into dishes and the is-menu flag.

    Accepts replies wrapped in code fences or surrounded by prose, and both
    ``dishes`` objects and a plain ``dishNames`` list. Returns ``None`` when
    no JSON object can be recovered.
    """
    try:
        data = _first_json_object(reply or "")
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    raw_items = data.get("dishes")
    if not isinstance(raw_items, list):
        raw_items = data.get("dishNames")
    if not isinstance(raw_items, list):
        raw_items = []

    dishes: list[ExtractedDish] = []
    seen: set[str] = set()
    for item in raw_items:
        if isinstance(item, dict):
            name = _clean_text(item.get("name"))
            description = _clean_text(item.get("description") or item.get("originalDescription"))
        else:
            name, description = _clean_text(item), None
        if not name or dish_match_key(name) in seen:
            continue
        seen.add(dish_match_key(name))
        dishes.append(ExtractedDish(name=name, original_description=description))

    is_menu = data.get("isMenu")
    if not isinstance(is_menu, bool):
        is_menu = bool(dishes)
    return dishes, is_menu


def candidate_lines(text: str) -> list[str]:
    """Lines of OCR text that could plausibly be dish names."""
    lines: list[str] = []
    seen: set[str] = set()
    for raw in text.splitlines():
        line = raw.strip()
        if not line or len(line) > _MAX_LINE_CHARS:
            continue
        if not _MIN_WORDS <= len(line.split()) <= _MAX_WORDS:
            continue
        if dish_match_key(line) in seen:
            continue
        seen.add(dish_match_key(line))
        lines.append(line)
    return lines


def _is_unsupported_format_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _UNSUPPORTED_HINTS)


class VisionExtractor:
    """
    Turns a menu photo into a list of dishes.

    The vision LLM is tried first. OCR line heuristics take over whenever it
    cannot produce a usable reply. Any extraction that reached a provider is
    memoized by image hash; failures are retried on the next upload.
    """

    def __init__(
        self,
        vision_model: VisionModel | None,
        ocr: OCRProvider | None,
        limiter: RateLimiter,
        events: EventLog | None = None,
        config: VisionConfig = DEFAULT_VISION_CONFIG,
        memo: LRUCache | None = None,
    ) -> None:
        self._vision_model = vision_model
        self._ocr = ocr
        self._limiter = limiter
        self._events = events or EventLog()
        self._config = config
        self._memo = memo if memo is not None else LRUCache()

    def extract(self, image: bytes) -> MenuExtraction:
        mime_type = detect_image_type(image)
        if mime_type is None:
            raise UnsupportedImageError()

        memo_key = f"vision:{hashlib.sha256(image).hexdigest()}"
        cached = self._memo.get(memo_key)
        self._events.cache("vision-memo", cached is not None, memo_key)
        if cached is not None:
            return cached

        extraction = self._read_with_llm(image, mime_type)
        if extraction is None:
            extraction = self._read_with_ocr(image)
        if extraction is None:
            return MenuExtraction()
        self._memo.set(memo_key, extraction)
        return extraction

    def _read_with_llm(self, image: bytes, mime_type: str) -> MenuExtraction | None:
        if not self._config.enabled:
            self._events.info("Vision LLM disabled by configuration, using OCR")
            return None
        if self._vision_model is None:
            self._events.info("Vision LLM not configured, using OCR")
            return None
        if not self._limiter.check_and_increment(GROQ_VISION):
            self._events.info("Vision LLM rate limited, using OCR")
            return None

        language = self._config.target_language
        start = time.time()
        try:
            reply = self._vision_model.read_menu(
                image,
                mime_type,
                SYSTEM_PROMPT.format(language=language),
                USER_PROMPT.format(language=language),
            )
        except Exception as exc:
            self._events.api_call(GROQ_VISION, False, elapsed_ms(start), error=str(exc))
            if _is_unsupported_format_error(exc):
                raise UnsupportedImageError() from exc
            logger.warning("Vision LLM call failed, falling back to OCR", exc_info=True)
            return None
        self._events.api_call(GROQ_VISION, True, elapsed_ms(start))

        parsed = parse_menu_reply(reply)
        if parsed is None:
            self._events.warning("Vision LLM reply was not valid JSON, using OCR")
            return None
        dishes, is_menu = parsed
        self._events.info(f"Vision LLM identified {len(dishes)} dishes", source=SOURCE_VISION)
        return MenuExtraction(dishes=tuple(dishes), is_menu=is_menu, source=SOURCE_VISION)

    def _read_with_ocr(self, image: bytes) -> MenuExtraction | None:
        if self._ocr is None:
            self._events.warning("No OCR provider configured, returning no dishes")
            return None
        if not self._limiter.check_and_increment(GOOGLE_VISION):
            self._events.warning("OCR rate limited, returning no dishes")
            return None

        start = time.time()
        try:
            result = self._ocr.annotate(image)
        except Exception as exc:
            self._events.api_call(GOOGLE_VISION, False, elapsed_ms(start), error=str(exc))
            logger.warning("OCR fallback failed", exc_info=True)
            return None
        self._events.api_call(GOOGLE_VISION, True, elapsed_ms(start))

        lines = candidate_lines(result.text)
        self._events.info(f"OCR extracted {len(lines)} potential dish names", source=SOURCE_OCR)
        return MenuExtraction(
            dishes=tuple(ExtractedDish(name=line) for line in lines),
            is_menu=result.is_menu,
            source=SOURCE_OCR,
        )
