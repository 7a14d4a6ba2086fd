from __future__ import annotations

from sqlalchemy import inspect

from patrika.core.config import Settings
from patrika.db.init import init_db
from patrika.db.session import build_engine

REQUIRED_TABLES = {"news", "news_categories"}


def test_required_tables_exist() -> None:
    settings = Settings(database_url="sqlite:///:memory:")
    engine = build_engine(settings)
    init_db(engine)

    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    assert REQUIRED_TABLES.issubset(tables)


def test_news_is_unique_on_title_and_origin() -> None:
    settings = Settings(database_url="sqlite:///:memory:")
    engine = build_engine(settings)
    init_db(engine)

    inspector = inspect(engine)
    unique_columns = [tuple(constraint["column_names"]) for constraint in inspector.get_unique_constraints("news")]
    assert ("title", "origin") in unique_columns

    index_names = {index["name"] for index in inspector.get_indexes("news_categories")}
    assert "ix_news_categories_category_published" in index_names
