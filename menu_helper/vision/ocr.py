from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from .config import DEFAULT_VISION_CONFIG, VisionConfig

logger = logging.getLogger(__name__)

MENU_KEYWORDS = (
    "menu", "food", "restaurant", "dish", "cuisine",
    "meal", "dining", "recipe", "text", "document",
    "paper", "cafe", "bistro", "drink", "beverage",
)


class OCRError(Exception):
    """The OCR provider failed or reported an error for the image."""


@dataclass(frozen=True)
class OCRLabel:
    description: str
    score: float = 0.0


@dataclass(frozen=True)
class OCRResult:
    text: str = ""
    labels: tuple[OCRLabel, ...] = ()

    @property
    def is_menu(self) -> bool:
        return looks_like_menu(self.labels)


class OCRProvider(Protocol):
    def annotate(self, image: bytes) -> OCRResult: ...


def looks_like_menu(labels: tuple[OCRLabel, ...] | list[OCRLabel]) -> bool:
    """True if any label mentions a menu-ish keyword."""
    return any(
        keyword in label.description.lower() for label in labels for keyword in MENU_KEYWORDS
    )


class GoogleVisionOCR:
    """Document text detection plus label detection via Cloud Vision REST."""

    def __init__(
        self,
        config: VisionConfig = DEFAULT_VISION_CONFIG,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()

    def annotate(self, image: bytes) -> OCRResult:
        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image).decode("ascii")},
                    "features": [
                        {"type": "DOCUMENT_TEXT_DETECTION"},
                        {"type": "LABEL_DETECTION", "maxResults": self._config.ocr_max_labels},
                    ],
                }
            ]
        }
        try:
            response = self._session.post(
                self._config.ocr_endpoint,
                params={"key": self._config.ocr_api_key},
                json=payload,
                timeout=self._config.ocr_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise OCRError(f"vision request failed: {exc}") from exc

        results = body.get("responses") or [{}]
        result = results[0]
        if result.get("error"):
            raise OCRError(f"vision API error: {result['error'].get('message', 'unknown')}")

        if result.get("fullTextAnnotation"):
            text = result["fullTextAnnotation"].get("text", "")
        elif result.get("textAnnotations"):
            text = result["textAnnotations"][0].get("description", "")
        else:
            text = ""

        labels = tuple(
            OCRLabel(description=label.get("description", ""), score=float(label.get("score", 0.0)))
            for label in result.get("labelAnnotations", [])
        )
        logger.debug("OCR read %d characters and %d labels", len(text), len(labels))
        return OCRResult(text=text, labels=labels)
