from __future__ import annotations

import os
from dataclasses import dataclass

from ..config import env_flag, load_environment

load_environment()


@dataclass(frozen=True)
class VisionConfig:
    ocr_api_key: str = os.getenv("GOOGLE_VISION_API_KEY", "")
    ocr_endpoint: str = "https://vision.googleapis.com/v1/images:annotate"
    ocr_timeout: float = 15.0
    ocr_max_labels: int = 10
    enabled: bool = env_flag("ENABLE_VISION_LLM")
    target_language: str = os.getenv("VISION_TARGET_LANGUAGE", "English")


DEFAULT_VISION_CONFIG = VisionConfig()
