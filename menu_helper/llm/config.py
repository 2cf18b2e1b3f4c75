from __future__ import annotations

import os
from dataclasses import dataclass

from ..config import env_flag, load_environment

load_environment()


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("GROQ_TEXT_MODEL", "llama-3.3-70b-versatile")
    vision_model: str = os.getenv(
        "GROQ_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct"
    )
    timeout: float = 10.0
    vision_timeout: float = 30.0
    max_tokens: int = 1024
    max_retries: int = 2
    enabled: bool = env_flag("ENABLE_LLM")

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.api_key)


DEFAULT_LLM_CONFIG = LLMConfig()
