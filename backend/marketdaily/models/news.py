"""News item model. Rows are immutable once stored, except for retention purging."""

from datetime import datetime

from sqlalchemy import DateTime, Float, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketdaily.models.base import Base, UUIDMixin, TimestampMixin


class NewsItem(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "news"

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str | None] = mapped_column(Text)
    summary: Mapped[str | None] = mapped_column(Text)
    url: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(50), index=True)
    # Ticker symbols the item relates to (logically a set)
    symbols: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    sentiment: Mapped[float | None] = mapped_column(Float)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
