from __future__ import annotations

import pytest

from menu_helper.analytics.events import EventLog
from menu_helper.config import AppConfig
from menu_helper.container import build_services
from menu_helper.ratelimit.counter_store import MemoryCounterStore
from menu_helper.ratelimit.limiter import RateLimiter
from menu_helper.storage.config import StorageConfig
from menu_helper.storage.db import init_db, make_engine, make_session_factory
from menu_helper.storage.dish_cache import DishCacheStore

from .fakes import GENEROUS_LIMITS


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(StorageConfig(database_url=f"sqlite:///{tmp_path / 'test.db'}"))
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def limiter(events):
    return RateLimiter(MemoryCounterStore(), events, GENEROUS_LIMITS)


@pytest.fixture
def dish_cache(session_factory):
    return DishCacheStore(session_factory)


@pytest.fixture
def make_services(session_factory):
    """Build wired services around the given fakes and an in-memory database."""

    def _make(
        chat_model=None,
        vision_model=None,
        ocr=None,
        image_search=None,
        rate_config=GENEROUS_LIMITS,
        app_config=None,
    ):
        return build_services(
            session_factory=session_factory,
            counter_store=MemoryCounterStore(),
            chat_model=chat_model,
            vision_model=vision_model,
            ocr=ocr,
            image_search=image_search,
            app_config=app_config or AppConfig(),
            rate_config=rate_config,
        )

    return _make
