from __future__ import annotations

from pydantic import Field, field_validator

from ..dishes.models import Dish
from ..models import CamelModel

_MAX_TAGS = 50
_MAX_TAG_LENGTH = 100


def _clean_tags(values: list[str]) -> list[str]:
    seen: set[str] = set()
    cleaned: list[str] = []
    for value in values:
        tag = value.strip()
        if not tag or tag.lower() in seen:
            continue
        if len(tag) > _MAX_TAG_LENGTH:
            raise ValueError(f"tag longer than {_MAX_TAG_LENGTH} characters")
        seen.add(tag.lower())
        cleaned.append(tag)
    return cleaned


class PreferencesPayload(CamelModel):
    dietary: list[str] = Field(default_factory=list, max_length=_MAX_TAGS)
    cuisines: list[str] = Field(default_factory=list, max_length=_MAX_TAGS)
    allergies: list[str] = Field(default_factory=list, max_length=_MAX_TAGS)
    flavors: list[str] = Field(default_factory=list, max_length=_MAX_TAGS)
    disliked_ingredients: list[str] = Field(default_factory=list, max_length=_MAX_TAGS)

    @field_validator(
        "dietary", "cuisines", "allergies", "flavors", "disliked_ingredients"
    )
    @classmethod
    def _strip_tags(cls, values: list[str]) -> list[str]:
        return _clean_tags(values)


class PreferenceProfile(PreferencesPayload):
    device_id: str = Field(..., min_length=1, max_length=128)


class Recommendation(CamelModel):
    name: str
    description: str | None = None
    image_url: str | None = None
    match_score: int = Field(..., ge=0, le=100)
    match_reason: str


class RecommendationRequest(CamelModel):
    dishes: list[Dish] = Field(default_factory=list, max_length=200)


class RecommendationResponse(CamelModel):
    recommendations: list[Recommendation]
    message: str
