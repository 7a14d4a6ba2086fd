from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from patrika.db.base import Base


class NewsArticle(Base):
    __tablename__ = "news"
    __table_args__ = (UniqueConstraint("title", "origin", name="uq_news_title_origin"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(1024), index=True)
    image_url: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    origin: Mapped[str] = mapped_column(String(255), index=True)
    author: Mapped[str] = mapped_column(String(255), default="Unknown", nullable=False)
    url: Mapped[str] = mapped_column(String(2048))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    categories: Mapped[list[NewsCategory]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="NewsCategory.position",
    )


class NewsCategory(Base):
    __tablename__ = "news_categories"
    __table_args__ = (
        UniqueConstraint("news_id", "category", name="uq_news_category"),
        Index("ix_news_categories_category_published", "category", "published_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    news_id: Mapped[int] = mapped_column(ForeignKey("news.id", ondelete="CASCADE"), index=True)
    category: Mapped[str] = mapped_column(String(64))
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # copied from the parent row so category-filtered reads can walk the compound index
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    article: Mapped[NewsArticle] = relationship(back_populates="categories")
