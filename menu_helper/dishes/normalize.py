from __future__ import annotations

import re

# Currency symbol followed by a price: $12.99, £10, € 15,50, ¥1000, ₹500 ...
_CURRENCY_PRICE_RE = re.compile(r"[$£€¥₹₩฿]\s*\d+(?:[.,]\d{1,2})?")
# Bare price at the end of the name: "Pad Thai 12.99"
_TRAILING_PRICE_RE = re.compile(r"\s+\d+(?:[.,]\d{1,2})?\s*$")
_PARENS_RE = re.compile(r"\([^)]*\)")
_BRACKETS_RE = re.compile(r"\[[^\]]*\]")
_BRACES_RE = re.compile(r"\{[^}]*\}")
# Delimiters left unmatched by nested annotations
_STRAY_DELIMITERS_RE = re.compile(r"[()\[\]{}]")
# Menu markers: asterisks, daggers, bullets, stars, chili / fire / leaf emoji
_GLYPHS_RE = re.compile("[*†‡•◆★☆\U0001f336\ufe0f\U0001f525\U0001f96c\U0001f331]")
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_once(name: str) -> str:
    name = _CURRENCY_PRICE_RE.sub("", name)
    name = _TRAILING_PRICE_RE.sub("", name)
    name = _PARENS_RE.sub("", name)
    name = _BRACKETS_RE.sub("", name)
    name = _BRACES_RE.sub("", name)
    name = _STRAY_DELIMITERS_RE.sub("", name)
    name = _GLYPHS_RE.sub("", name)
    name = _WHITESPACE_RE.sub(" ", name)
    return name.strip().lower()


def normalize_dish_name(dish_name: str | None) -> str:
    """
    Canonical cache key for a raw menu dish name.

    ``"  Pad Thai $12.99 "`` -> ``"pad thai"``
    ``"Margherita Pizza (vegetarian) [v]"`` -> ``"margherita pizza"``

    Passes repeat until nothing changes, so the result is a fixed point and
    ``normalize_dish_name(normalize_dish_name(x)) == normalize_dish_name(x)``.
    """
    if not dish_name:
        return ""

    current = dish_name
    while True:
        nxt = _normalize_once(current)
        if nxt == current:
            return nxt
        current = nxt


def dish_match_key(dish_name: str | None) -> str:
    """Looser key used to match LLM output against a candidate list."""
    return (dish_name or "").strip().lower()
