from __future__ import annotations

from collections.abc import Iterator

import pytest

from patrika.core.config import Settings
from patrika.db.init import init_db
from patrika.db.session import build_engine, build_session_factory
from patrika.news.store import NewsStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'patrika.db'}",
        queue_backend="memory",
        cache_backend="memory",
    )


@pytest.fixture
def store(settings: Settings) -> Iterator[NewsStore]:
    engine = build_engine(settings)
    init_db(engine)
    yield NewsStore(build_session_factory(engine))
    engine.dispose()
