"""News item persistence and windowed queries.

Queries are composed from a typed ``NewsFilter`` with a fixed predicate set;
all values are bound parameters. Symbol intersection is evaluated in Python
since ``symbols`` is stored as a JSON list.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdaily.models.news import NewsItem
from marketdaily.schemas.report import NewsEntry
from marketdaily.services.sentiment import average_sentiment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewsFilter:
    """Supported predicates. ``since`` is inclusive, ``until`` exclusive."""
    category: str | None = None
    source: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    min_sentiment: float | None = None
    max_sentiment: float | None = None
    text: str | None = None
    symbols: frozenset[str] | None = None

    def matches_symbols(self, symbols: Iterable[str]) -> bool:
        if self.symbols is None:
            return True
        return not self.symbols.isdisjoint(symbols or ())


class NewsStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def query(self, news_filter: NewsFilter, limit: int | None = None) -> list[NewsEntry]:
        """Items matching the filter, newest first."""
        stmt = select(NewsItem)
        f = news_filter
        if f.category is not None:
            stmt = stmt.where(NewsItem.category == f.category)
        if f.source is not None:
            stmt = stmt.where(NewsItem.source == f.source)
        if f.since is not None:
            stmt = stmt.where(NewsItem.created_at >= f.since)
        if f.until is not None:
            stmt = stmt.where(NewsItem.created_at < f.until)
        if f.min_sentiment is not None:
            stmt = stmt.where(NewsItem.sentiment >= f.min_sentiment)
        if f.max_sentiment is not None:
            stmt = stmt.where(NewsItem.sentiment <= f.max_sentiment)
        if f.text:
            stmt = stmt.where(or_(
                NewsItem.title.icontains(f.text, autoescape=True),
                NewsItem.content.icontains(f.text, autoescape=True),
                NewsItem.summary.icontains(f.text, autoescape=True),
            ))
        stmt = stmt.order_by(NewsItem.created_at.desc())
        # Symbol filtering happens after the fetch, so the limit must too
        if limit is not None and f.symbols is None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as db:
            result = await db.execute(stmt)
            rows = result.scalars().all()

        entries = [NewsEntry.model_validate(row) for row in rows if f.matches_symbols(row.symbols)]
        return entries[:limit] if limit is not None else entries

    async def recent(self, limit: int = 20) -> list[NewsEntry]:
        return await self.query(NewsFilter(), limit=limit)

    async def created_between(self, start: datetime, end: datetime) -> list[NewsEntry]:
        return await self.query(NewsFilter(since=start, until=end))

    async def search(
        self,
        text: str,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 30,
    ) -> list[NewsEntry]:
        """Case-insensitive substring match over title, content and summary."""
        return await self.query(NewsFilter(text=text, since=since, until=until), limit=limit)

    async def related_stats(
        self,
        symbols: Iterable[str],
        since: datetime,
        until: datetime,
    ) -> tuple[int, float]:
        """(count, mean non-null sentiment) of items related to any symbol."""
        items = await self.query(NewsFilter(since=since, until=until, symbols=frozenset(symbols)))
        return len(items), average_sentiment(i.sentiment for i in items)

    async def existing_urls(self, urls: Iterable[str]) -> set[str]:
        """Subset of ``urls`` already stored."""
        urls = list(set(urls))
        if not urls:
            return set()
        async with self._session_factory() as db:
            result = await db.execute(select(NewsItem.url).where(NewsItem.url.in_(urls)))
            return set(result.scalars().all())

    async def add(
        self,
        title: str,
        url: str,
        source: str = "",
        summary: str | None = None,
        content: str | None = None,
        category: str | None = None,
        symbols: Iterable[str] = (),
        sentiment: float | None = None,
        published_at: datetime | None = None,
        created_at: datetime | None = None,
    ) -> NewsEntry | None:
        """Insert an item. Returns None if the URL is already stored."""
        async with self._session_factory() as db:
            existing = await db.execute(select(NewsItem.id).where(NewsItem.url == url))
            if existing.scalar_one_or_none() is not None:
                return None

            item = NewsItem(
                title=title,
                url=url,
                source=source,
                summary=summary,
                content=content,
                category=category,
                symbols=sorted(set(symbols)),
                sentiment=sentiment,
                published_at=published_at or datetime.now(timezone.utc),
            )
            if created_at is not None:
                item.created_at = created_at
            db.add(item)
            await db.commit()
            return NewsEntry.model_validate(item)

    async def purge_older_than(self, days: int, now: datetime | None = None) -> int:
        """Delete items created before the retention window. Returns row count."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        async with self._session_factory() as db:
            result = await db.execute(delete(NewsItem).where(NewsItem.created_at < cutoff))
            await db.commit()
        logger.info("Purged %d news items older than %s", result.rowcount, cutoff.isoformat())
        return result.rowcount
