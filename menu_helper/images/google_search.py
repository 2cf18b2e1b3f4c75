from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from .config import DEFAULT_IMAGE_SEARCH_CONFIG, ImageSearchConfig

logger = logging.getLogger(__name__)

_QUOTA_REASONS = {
    "rateLimitExceeded",
    "userRateLimitExceeded",
    "dailyLimitExceeded",
    "quotaExceeded",
}


class ImageSearchError(Exception):
    """The image search provider failed or returned an unusable response."""


class ImageQuotaExceededError(ImageSearchError):
    """The provider reported that our quota is used up."""


@dataclass(frozen=True)
class ImageCandidate:
    link: str
    thumbnail: str | None = None
    title: str | None = None


class ImageSearchProvider(Protocol):
    def search(self, query: str, num: int) -> list[ImageCandidate]: ...


def _error_reasons(response: requests.Response) -> set[str]:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return set()
    reasons = {e.get("reason", "") for e in error.get("errors", []) if isinstance(e, dict)}
    if error.get("status"):
        reasons.add(str(error["status"]))
    return reasons


def is_quota_response(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        reasons = _error_reasons(response)
        return bool(reasons & _QUOTA_REASONS) or "RESOURCE_EXHAUSTED" in reasons
    return False


class GoogleImageSearch:
    """Google Custom Search JSON API restricted to large, safe photos."""

    def __init__(
        self,
        config: ImageSearchConfig = DEFAULT_IMAGE_SEARCH_CONFIG,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()

    def search(self, query: str, num: int) -> list[ImageCandidate]:
        params = {
            "key": self._config.api_key,
            "cx": self._config.cx,
            "q": query,
            "searchType": "image",
            "num": num,
            "imgSize": "large",
            "imgType": "photo",
            "safe": "active",
        }
        try:
            response = self._session.get(
                self._config.endpoint, params=params, timeout=self._config.timeout
            )
        except requests.RequestException as exc:
            raise ImageSearchError(f"image search request failed: {exc}") from exc

        if is_quota_response(response):
            raise ImageQuotaExceededError(f"image search quota exceeded (HTTP {response.status_code})")
        if not response.ok:
            raise ImageSearchError(f"image search returned HTTP {response.status_code}")

        try:
            items = response.json().get("items") or []
        except ValueError as exc:
            raise ImageSearchError("image search returned invalid JSON") from exc

        candidates = []
        for item in items:
            link = item.get("link")
            if not link:
                continue
            candidates.append(
                ImageCandidate(
                    link=link,
                    thumbnail=(item.get("image") or {}).get("thumbnailLink"),
                    title=item.get("title"),
                )
            )
        logger.debug("Image search for %r returned %d candidates", query, len(candidates))
        return candidates
