from __future__ import annotations

import os
from dataclasses import dataclass

from ..config import PROJECT_ROOT, load_environment

load_environment()


@dataclass(frozen=True)
class StorageConfig:
    database_url: str = os.getenv(
        "DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'menu_helper.db'}"
    )
    cache_ttl_days: int = int(os.getenv("DISH_CACHE_TTL_DAYS", "90"))
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False


DEFAULT_STORAGE_CONFIG = StorageConfig()
