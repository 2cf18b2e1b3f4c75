from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import Field

from ..models import CamelModel


class ExtractedDish(CamelModel):
    name: str = Field(..., min_length=1)
    original_description: str | None = None


class DishMetadata(CamelModel):
    thumbnail_url: str | None = None
    all_image_urls: list[str] = Field(default_factory=list)
    from_cache: bool = False


class Dish(CamelModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    original_description: str | None = None
    image_url: str | None = None
    metadata: DishMetadata = Field(default_factory=DishMetadata)


class AnalyzeResponse(CamelModel):
    dishes: list[Dish]
    message: str
    image_quota_exceeded: bool = False


class DishDetailRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    original_description: str | None = Field(default=None, max_length=1000)


class DishDetailResponse(CamelModel):
    name: str
    detailed_description: str
    success: bool = True


@dataclass(frozen=True)
class ImageResult:
    image_url: str | None = None
    thumbnail_url: str | None = None
    all_image_urls: tuple[str, ...] = ()
    quota_exceeded: bool = False
    from_cache: bool = False

    @classmethod
    def empty(cls, quota_exceeded: bool = False) -> "ImageResult":
        return cls(quota_exceeded=quota_exceeded)


@dataclass(frozen=True)
class DishCacheEntry:
    dish_id: str
    dish_name: str
    image_urls: tuple[str, ...] = ()
    description: str | None = None
    source: str = "unknown"
    metadata: dict[str, Any] = field(default_factory=dict)
    cached_at: datetime | None = None
    expires_at: datetime | None = None
