"""NewsAPI.org provider (``/v2/everything``)."""

from datetime import timedelta

from marketdaily.core.exceptions import ExternalProviderError
from marketdaily.integrations.news.base import NewsProvider, parse_iso_datetime
from marketdaily.schemas.report import NewsEntry

SEARCH_PAGE_SIZE = 20
SYMBOL_PAGE_SIZE = 5


class NewsAPIProvider(NewsProvider):
    base_url = "https://newsapi.org/v2"

    @property
    def name(self) -> str:
        return "newsapi"

    async def search(self, query: str, days: int) -> list[NewsEntry]:
        since = self._now() - timedelta(days=days)
        data = await self._get_json("/everything", {
            "q": query,
            "from": since.date().isoformat(),
            "sortBy": "publishedAt",
            "language": "en",
            "pageSize": SEARCH_PAGE_SIZE,
            "apiKey": self._api_key,
        })
        return self._parse(data, category="external", symbols=[])

    async def company_news(self, symbol: str, days: int) -> list[NewsEntry]:
        since = self._now() - timedelta(days=days)
        data = await self._get_json("/everything", {
            "q": f'"{symbol}" stock OR "{symbol}" shares',
            "from": since.date().isoformat(),
            "sortBy": "relevancy",
            "language": "en",
            "pageSize": SYMBOL_PAGE_SIZE,
            "apiKey": self._api_key,
        })
        return self._parse(data, category="stock", symbols=[symbol])

    def _parse(self, data, category: str, symbols: list[str]) -> list[NewsEntry]:
        if not isinstance(data, dict) or data.get("status") != "ok":
            detail = data.get("message", "unexpected payload") if isinstance(data, dict) else "unexpected payload"
            raise ExternalProviderError(self.name, detail)

        items = []
        for article in data.get("articles") or []:
            title = (article.get("title") or "").strip()
            if not title or title == "[Removed]":
                continue
            source = (article.get("source") or {}).get("name") or "NewsAPI"
            items.append(NewsEntry(
                title=title,
                summary=article.get("description"),
                url=article.get("url"),
                source=source,
                category=category,
                symbols=list(symbols),
                sentiment=0.0,
                published_at=parse_iso_datetime(article.get("publishedAt")),
                external=True,
            ))
        return items
