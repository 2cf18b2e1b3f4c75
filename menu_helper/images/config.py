from __future__ import annotations

import os
from dataclasses import dataclass

from ..config import env_flag, load_environment

load_environment()


@dataclass(frozen=True)
class ImageSearchConfig:
    api_key: str = os.getenv("GOOGLE_SEARCH_API_KEY", "")
    cx: str = os.getenv("GOOGLE_SEARCH_CX", "")
    enabled: bool = env_flag("ENABLE_IMAGE_SEARCH")
    endpoint: str = "https://www.googleapis.com/customsearch/v1"
    query_suffix: str = " food dish photo"
    num: int = 3
    timeout: float = 10.0

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.api_key) and bool(self.cx)


DEFAULT_IMAGE_SEARCH_CONFIG = ImageSearchConfig()
