from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def load_environment() -> None:
    """Load .env from project root. Existing environment variables win."""
    load_dotenv(PROJECT_ROOT / ".env")


load_environment()


def env_flag(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
    analyze_timeout: float = float(os.getenv("ANALYZE_TIMEOUT_SECONDS", "60"))
    enrich_max_concurrency: int = int(os.getenv("ENRICH_MAX_CONCURRENCY", "10"))
    memo_max_size: int = int(os.getenv("MEMO_MAX_SIZE", "1024"))
    placeholder_image_url: str = "https://placehold.co/400x300?text=No+Image"
    short_description_max_chars: int = 80
    secure_cookies: bool = env_flag("SECURE_COOKIES", default=False)


DEFAULT_APP_CONFIG = AppConfig()
