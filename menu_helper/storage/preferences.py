from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..recommendations.models import PreferenceProfile
from .db import SessionFactory, session_scope
from .models import PreferenceRow

_FIELDS = ("dietary", "cuisines", "allergies", "flavors", "disliked_ingredients")


def _to_profile(row: PreferenceRow) -> PreferenceProfile:
    return PreferenceProfile(
        device_id=row.device_id,
        dietary=list(row.dietary or []),
        cuisines=list(row.cuisines or []),
        allergies=list(row.allergies or []),
        flavors=list(row.flavors or []),
        disliked_ingredients=list(row.disliked_ingredients or []),
    )


class PreferenceRepository:
    """At most one preference profile per device id."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, device_id: str) -> PreferenceProfile | None:
        with session_scope(self._session_factory) as session:
            row = session.scalar(select(PreferenceRow).where(PreferenceRow.device_id == device_id))
            return _to_profile(row) if row else None

    def upsert(self, profile: PreferenceProfile) -> PreferenceProfile:
        """Update the device's profile if one exists, otherwise insert it."""
        try:
            return self._upsert_once(profile)
        except IntegrityError:
            # Another request inserted the same device first; update theirs
            return self._upsert_once(profile)

    def _upsert_once(self, profile: PreferenceProfile) -> PreferenceProfile:
        with session_scope(self._session_factory) as session:
            row = session.scalar(
                select(PreferenceRow).where(PreferenceRow.device_id == profile.device_id)
            )
            if row is None:
                row = PreferenceRow(device_id=profile.device_id)
                session.add(row)
            for name in _FIELDS:
                setattr(row, name, list(getattr(profile, name)))
            session.flush()
            return _to_profile(row)
