from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from patrika.core.exceptions import DuplicateItemError, InvalidItemError, StoreUnavailableError
from patrika.db.models import NewsArticle, NewsCategory
from patrika.news.models import NewsItem

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_item(row: NewsArticle) -> NewsItem:
    return NewsItem(
        id=row.id,
        title=row.title,
        url=row.url,
        origin=row.origin,
        published_at=_as_utc(row.published_at),
        categories=tuple(link.category for link in row.categories),
        image_url=row.image_url,
        summary=row.summary,
        author=row.author,
        created_at=_as_utc(row.created_at),
    )


def _filter_by_categories(stmt: Select[Any], categories: Sequence[str] | None) -> Select[Any]:
    if not categories:
        return stmt
    return stmt.where(NewsArticle.categories.any(NewsCategory.category.in_(list(categories))))


class NewsStore:
    """Persistence boundary for news items, keyed on (title, origin)."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.session_factory() as session:
                yield session
        except IntegrityError:
            raise
        except DataError as exc:
            # the row itself is bad; the store is fine
            raise InvalidItemError(f"News store rejected values: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"News store error: {exc}") from exc

    def find_existing(self, title: str, origin: str) -> NewsItem | None:
        with self._session() as session:
            row = session.execute(
                select(NewsArticle).where(NewsArticle.title == title, NewsArticle.origin == origin)
            ).scalar_one_or_none()
            return _to_item(row) if row is not None else None

    def insert(self, item: NewsItem) -> NewsItem:
        published_at = _as_utc(item.published_at)
        row = NewsArticle(
            title=item.title,
            image_url=item.image_url,
            summary=item.summary,
            published_at=published_at,
            origin=item.origin,
            author=item.author or "Unknown",
            url=item.url,
            created_at=_as_utc(item.created_at),
            categories=[
                NewsCategory(category=category, position=position, published_at=published_at)
                for position, category in enumerate(item.categories)
            ],
        )
        with self._session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateItemError(f"News item already stored: {item.title!r} from {item.origin}") from exc
            return _to_item(row)

    def find_page(self, categories: Sequence[str] | None, offset: int, limit: int) -> list[NewsItem]:
        stmt = (
            select(NewsArticle)
            .order_by(NewsArticle.published_at.desc(), NewsArticle.id.desc())
            .offset(offset)
            .limit(limit)
        )
        stmt = _filter_by_categories(stmt, categories)
        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_to_item(row) for row in rows]

    def count(self, categories: Sequence[str] | None) -> int:
        stmt = _filter_by_categories(select(func.count()).select_from(NewsArticle), categories)
        with self._session() as session:
            return int(session.execute(stmt).scalar_one())


async def run_store_call(fn: Callable[..., T], *args: Any, timeout: float) -> T:
    """Run a blocking store call on a worker thread under a timeout."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
    except TimeoutError as exc:
        name = getattr(fn, "__name__", repr(fn))
        raise StoreUnavailableError(f"Store call {name} timed out after {timeout:.1f}s") from exc
