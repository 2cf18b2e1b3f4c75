from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol, Sequence

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.orm import Session

from ..storage.db import SessionFactory, session_scope
from ..storage.models import RateCounterRow

Clock = Callable[[], float]


class CounterStore(Protocol):
    """Key-value counters with atomic increment and per-key expiry."""

    def get(self, key: str) -> int: ...

    def increment_if_below(self, limits: Sequence[tuple[str, int]]) -> list[int] | None:
        """
        Atomically increment every key if each one is below its limit.

        Returns the new counts in order, or ``None`` (and changes nothing)
        when any key is already at or above its limit.
        """
        ...

    def expire(self, key: str, seconds: int) -> None: ...

    def delete(self, *keys: str) -> None: ...


class MemoryCounterStore:
    """Single-process counter store guarded by one lock."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._values: dict[str, int] = {}
        self._expires: dict[str, float] = {}
        self._lock = threading.Lock()

    def _live_value(self, key: str, now: float) -> int:
        expires = self._expires.get(key)
        if expires is not None and expires <= now:
            self._values.pop(key, None)
            self._expires.pop(key, None)
        return self._values.get(key, 0)

    def _purge_expired(self, now: float) -> None:
        for key in [key for key, expires in self._expires.items() if expires <= now]:
            self._values.pop(key, None)
            self._expires.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def get(self, key: str) -> int:
        with self._lock:
            return self._live_value(key, self._clock())

    def increment_if_below(self, limits: Sequence[tuple[str, int]]) -> list[int] | None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            current = [self._live_value(key, now) for key, _ in limits]
            if any(count >= limit for count, (_, limit) in zip(current, limits)):
                return None
            for (key, _), count in zip(limits, current):
                self._values[key] = count + 1
            return [count + 1 for count in current]

    def expire(self, key: str, seconds: int) -> None:
        with self._lock:
            if key in self._values:
                self._expires[key] = self._clock() + seconds

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._values.pop(key, None)
                self._expires.pop(key, None)


class SQLCounterStore:
    """
    Counter store shared by every server process through the database.

    Each increment is a conditional ``UPDATE ... SET value = value + 1
    WHERE value < :limit`` inside one transaction, so the database row lock
    (or SQLite's write lock) makes check-and-increment atomic.
    """

    def __init__(self, session_factory: SessionFactory, clock: Clock = time.time) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).replace(tzinfo=None)

    @staticmethod
    def _is_live(now: datetime):
        return or_(RateCounterRow.expires_at.is_(None), RateCounterRow.expires_at > now)

    def get(self, key: str) -> int:
        with session_scope(self._session_factory) as session:
            value = session.scalar(
                select(RateCounterRow.value).where(
                    RateCounterRow.key == key, self._is_live(self._now())
                )
            )
            return int(value or 0)

    def increment_if_below(self, limits: Sequence[tuple[str, int]]) -> list[int] | None:
        now = self._now()
        with session_scope(self._session_factory) as session:
            # Old window keys are never read again, so drop them here
            session.execute(delete(RateCounterRow).where(RateCounterRow.expires_at <= now))
            counts: list[int] = []
            for key, limit in limits:
                count = self._increment(session, key, limit)
                if count is None:
                    session.rollback()
                    return None
                counts.append(count)
            return counts

    def _increment(self, session: Session, key: str, limit: int) -> int | None:
        if limit <= 0:
            return None

        self._ensure_row(session, key)
        result = session.execute(
            update(RateCounterRow)
            .where(RateCounterRow.key == key, RateCounterRow.value < limit)
            .values(value=RateCounterRow.value + 1)
        )
        if result.rowcount != 1:
            return None
        return int(session.scalar(select(RateCounterRow.value).where(RateCounterRow.key == key)))

    @staticmethod
    def _ensure_row(session: Session, key: str) -> None:
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            exists = session.scalar(select(RateCounterRow.key).where(RateCounterRow.key == key))
            if exists is None:
                session.execute(insert(RateCounterRow).values(key=key, value=0))
            return

        session.execute(
            dialect_insert(RateCounterRow)
            .values(key=key, value=0, expires_at=None)
            .on_conflict_do_nothing(index_elements=["key"])
        )

    def expire(self, key: str, seconds: int) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(
                update(RateCounterRow)
                .where(RateCounterRow.key == key)
                .values(expires_at=self._now() + timedelta(seconds=seconds))
            )

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        with session_scope(self._session_factory) as session:
            session.execute(delete(RateCounterRow).where(RateCounterRow.key.in_(keys)))
