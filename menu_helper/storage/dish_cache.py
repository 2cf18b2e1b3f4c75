from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..dishes.models import DishCacheEntry
from ..dishes.normalize import normalize_dish_name
from .config import DEFAULT_STORAGE_CONFIG
from .db import SessionFactory, session_scope, utcnow
from .models import DishCacheRow

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _to_entry(row: DishCacheRow) -> DishCacheEntry:
    return DishCacheEntry(
        dish_id=row.dish_id,
        dish_name=row.dish_name,
        image_urls=tuple(row.image_urls or ()),
        description=row.description,
        source=row.source,
        metadata=dict(row.extra or {}),
        cached_at=row.cached_at,
        expires_at=row.expires_at,
    )


class DishCacheStore:
    """
    Persistent dish cache keyed by normalized dish name.

    Expiry is a read-time filter: rows past ``expires_at`` are treated as a
    miss but never deleted here. Writes are merge-upserts and the last writer
    wins.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        ttl_days: int = DEFAULT_STORAGE_CONFIG.cache_ttl_days,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = timedelta(days=ttl_days)
        self._clock = clock

    def find(self, dish_name: str) -> DishCacheEntry | None:
        """Return the live entry for *dish_name*, or ``None`` on miss/expiry."""
        dish_id = normalize_dish_name(dish_name)
        if not dish_id:
            return None

        with session_scope(self._session_factory) as session:
            row = session.scalar(select(DishCacheRow).where(DishCacheRow.dish_id == dish_id))
            if row is None:
                return None
            if row.expires_at is not None and row.expires_at <= self._clock():
                return None
            return _to_entry(row)

    def upsert(
        self,
        dish_name: str,
        *,
        display_name: str | None = None,
        image_urls: list[str] | None = None,
        description: str | None = None,
        source: str | None = None,
        metadata: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
    ) -> DishCacheEntry:
        """
        Insert or merge a cache row. Only the fields passed are replaced;
        ``metadata`` is merged key by key. Every write refreshes expiry.
        """
        dish_id = normalize_dish_name(dish_name)
        if not dish_id:
            raise ValueError("dish name is empty after normalization")

        now = self._clock()
        values = {
            "dish_name": display_name or dish_name.strip(),
            "image_urls": list(image_urls) if image_urls is not None else _UNSET,
            "description": description if description is not None else _UNSET,
            "source": source or _UNSET,
            "metadata": metadata or {},
            "cached_at": now,
            "expires_at": expires_at or now + self._ttl,
        }

        try:
            return self._upsert_once(dish_id, values)
        except IntegrityError:
            # Lost an insert race on dish_id; merge into the winner's row
            logger.debug("Concurrent insert for %r, retrying as update", dish_id)
            return self._upsert_once(dish_id, values)

    def _upsert_once(self, dish_id: str, values: dict[str, Any]) -> DishCacheEntry:
        with session_scope(self._session_factory) as session:
            row = session.scalar(select(DishCacheRow).where(DishCacheRow.dish_id == dish_id))
            if row is None:
                row = DishCacheRow(dish_id=dish_id, image_urls=[], extra={}, source="unknown")
                session.add(row)
            self._apply(row, values)
            session.flush()
            return _to_entry(row)

    @staticmethod
    def _apply(row: DishCacheRow, values: dict[str, Any]) -> None:
        row.dish_name = values["dish_name"]
        for attr in ("image_urls", "description", "source"):
            if values[attr] is not _UNSET:
                setattr(row, attr, values[attr])
        if values["metadata"]:
            row.extra = {**(row.extra or {}), **values["metadata"]}
        row.cached_at = values["cached_at"]
        row.expires_at = values["expires_at"]

    def stats(self) -> dict[str, int]:
        now = self._clock()
        with session_scope(self._session_factory) as session:
            total = session.scalar(select(func.count()).select_from(DishCacheRow)) or 0
            expired = session.scalar(
                select(func.count())
                .select_from(DishCacheRow)
                .where(DishCacheRow.expires_at.is_not(None), DishCacheRow.expires_at <= now)
            ) or 0
        return {"entries": total, "expired": expired, "live": total - expired}
