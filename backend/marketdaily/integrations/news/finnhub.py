"""Finnhub provider (general market news and company news)."""

from datetime import datetime, timedelta, timezone

from marketdaily.core.exceptions import ExternalProviderError
from marketdaily.integrations.news.base import NewsProvider
from marketdaily.schemas.report import NewsEntry

MARKET_NEWS_LIMIT = 10
COMPANY_NEWS_LIMIT = 5


class FinnhubProvider(NewsProvider):
    base_url = "https://finnhub.io/api/v1"

    @property
    def name(self) -> str:
        return "finnhub"

    async def search(self, query: str, days: int) -> list[NewsEntry]:
        """Finnhub has no free-text search; general market news is filtered
        client-side by query terms and the lookback window."""
        data = await self._get_json("/news", {"category": "general", "token": self._api_key})
        since = self._now() - timedelta(days=days)
        terms = [t for t in query.lower().split() if t]

        items = []
        for entry in self._parse(data, category="market"):
            if entry.published_at and entry.published_at < since:
                continue
            text = f"{entry.title} {entry.summary or ''}".lower()
            if terms and not all(t in text for t in terms):
                continue
            items.append(entry)
            if len(items) >= MARKET_NEWS_LIMIT:
                break
        return items

    async def company_news(self, symbol: str, days: int) -> list[NewsEntry]:
        now = self._now()
        data = await self._get_json("/company-news", {
            "symbol": symbol,
            "from": (now - timedelta(days=days)).date().isoformat(),
            "to": now.date().isoformat(),
            "token": self._api_key,
        })
        items = self._parse(data, category="stock")[:COMPANY_NEWS_LIMIT]
        for item in items:
            item.symbols = [symbol]
        return items

    def _parse(self, data, category: str) -> list[NewsEntry]:
        if not isinstance(data, list):
            raise ExternalProviderError(self.name, "expected a list of articles")

        items = []
        for article in data:
            headline = (article.get("headline") or "").strip()
            if not headline:
                continue
            related = article.get("related") or ""
            timestamp = article.get("datetime")
            items.append(NewsEntry(
                title=headline,
                summary=article.get("summary"),
                url=article.get("url"),
                source=article.get("source") or "Finnhub",
                category=category,
                symbols=[s.strip() for s in related.split(",") if s.strip()],
                sentiment=article.get("sentiment") or 0.0,
                published_at=datetime.fromtimestamp(timestamp, tz=timezone.utc) if timestamp else None,
                external=True,
            ))
        return items
