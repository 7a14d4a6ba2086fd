from __future__ import annotations

import time
from unittest.mock import patch

import pytest
from sqlalchemy.exc import DataError
from sqlalchemy.orm import Session

from patrika.core.config import Settings
from patrika.core.exceptions import DuplicateItemError, InvalidItemError, StoreUnavailableError
from patrika.db.session import build_engine, build_session_factory
from patrika.news.store import NewsStore, run_store_call
from helpers import BASE_TIME, make_item


def test_insert_and_find_existing(store: NewsStore) -> None:
    saved = store.insert(make_item("Election results announced", categories=("Politics", "India")))

    assert saved.id is not None
    found = store.find_existing("Election results announced", "BBC")
    assert found is not None
    assert found.id == saved.id
    assert found.categories == ("Politics", "India")
    assert found.published_at == BASE_TIME
    assert store.find_existing("Election results announced", "NDTV") is None


def test_duplicate_title_and_origin_is_rejected(store: NewsStore) -> None:
    store.insert(make_item("Same headline"))
    with pytest.raises(DuplicateItemError):
        store.insert(make_item("Same headline", categories=("Tech",)))

    # same title from another origin is a different item
    store.insert(make_item("Same headline", origin="NDTV"))
    assert store.count(None) == 2


def test_find_page_orders_newest_first_and_filters(store: NewsStore) -> None:
    store.insert(make_item("old world", categories=("World",), minutes_ago=30))
    store.insert(make_item("new tech", categories=("Tech",), minutes_ago=1))
    store.insert(make_item("mid sports", categories=("Sports",), minutes_ago=10))
    store.insert(make_item("mixed", categories=("Sports", "World"), minutes_ago=5))

    titles = [item.title for item in store.find_page(None, 0, 10)]
    assert titles == ["new tech", "mixed", "mid sports", "old world"]

    filtered = store.find_page(["World", "Tech"], 0, 10)
    assert [item.title for item in filtered] == ["new tech", "mixed", "old world"]
    assert store.count(["World", "Tech"]) == 3
    assert store.count(["Health"]) == 0

    second_page = store.find_page(None, 2, 2)
    assert [item.title for item in second_page] == ["mid sports", "old world"]


def test_database_errors_surface_as_store_unavailable(tmp_path) -> None:
    # schema never created, so every query fails
    engine = build_engine(Settings(database_url=f"sqlite:///{tmp_path / 'empty.db'}"))
    store = NewsStore(build_session_factory(engine))

    with pytest.raises(StoreUnavailableError):
        store.count(None)
    with pytest.raises(StoreUnavailableError):
        store.find_existing("anything", "BBC")


def test_rejected_values_surface_as_invalid_item(store: NewsStore) -> None:
    error = DataError("INSERT INTO news", {}, Exception("value too long for type character varying(1024)"))
    with patch.object(Session, "commit", side_effect=error):
        with pytest.raises(InvalidItemError) as excinfo:
            store.insert(make_item("Oversized headline"))

    assert not isinstance(excinfo.value, StoreUnavailableError)
    assert store.count(None) == 0
    store.insert(make_item("Normal headline"))
    assert store.count(None) == 1


@pytest.mark.asyncio
async def test_run_store_call_times_out() -> None:
    def _slow() -> int:
        time.sleep(0.3)
        return 1

    with pytest.raises(StoreUnavailableError, match="timed out"):
        await run_store_call(_slow, timeout=0.05)


@pytest.mark.asyncio
async def test_run_store_call_returns_result(store: NewsStore) -> None:
    store.insert(make_item("threaded"))
    assert await run_store_call(store.count, None, timeout=5) == 1
