"""Alpha Vantage ``NEWS_SENTIMENT`` provider.

Unlike the other providers it supplies a per-article sentiment score, which
is kept (clamped to [-1, 1]).
"""

from datetime import datetime, timedelta, timezone

from marketdaily.core.exceptions import ExternalProviderError
from marketdaily.integrations.news.base import NewsProvider
from marketdaily.schemas.report import NewsEntry

ARTICLE_LIMIT = 10

# Alpha Vantage only filters by these fixed topic names
SUPPORTED_TOPICS = {
    "blockchain": "blockchain",
    "crypto": "blockchain",
    "earnings": "earnings",
    "ipo": "ipo",
    "mergers": "mergers_and_acquisitions",
    "acquisitions": "mergers_and_acquisitions",
    "financial markets": "financial_markets",
    "fiscal policy": "economy_fiscal",
    "monetary policy": "economy_monetary",
    "economy": "economy_macro",
    "energy": "energy_transportation",
    "finance": "finance",
    "life sciences": "life_sciences",
    "manufacturing": "manufacturing",
    "real estate": "real_estate",
    "retail": "retail_wholesale",
    "technology": "technology",
}


def _clamp(score) -> float:
    try:
        value = float(score)
    except (TypeError, ValueError):
        return 0.0
    return max(-1.0, min(1.0, value))


class AlphaVantageProvider(NewsProvider):
    base_url = "https://www.alphavantage.co"

    @property
    def name(self) -> str:
        return "alphavantage"

    async def search(self, query: str, days: int) -> list[NewsEntry]:
        topic = SUPPORTED_TOPICS.get(query.strip().lower())
        if topic is None:
            return []
        data = await self._get_json("/query", self._params(days, topics=topic))
        return self._parse(data, category="external")

    async def company_news(self, symbol: str, days: int) -> list[NewsEntry]:
        data = await self._get_json("/query", self._params(days, tickers=symbol))
        items = self._parse(data, category="stock")
        for item in items:
            if symbol not in item.symbols:
                item.symbols.append(symbol)
        return items

    def _params(self, days: int, **filters) -> dict:
        since = self._now() - timedelta(days=days)
        return {
            "function": "NEWS_SENTIMENT",
            "time_from": since.strftime("%Y%m%dT%H%M"),
            "sort": "LATEST",
            "limit": ARTICLE_LIMIT,
            "apikey": self._api_key,
            **filters,
        }

    def _parse(self, data, category: str) -> list[NewsEntry]:
        if not isinstance(data, dict) or "feed" not in data:
            detail = "unexpected payload"
            if isinstance(data, dict):
                detail = data.get("Information") or data.get("Note") or data.get("Error Message") or detail
            raise ExternalProviderError(self.name, detail)

        items = []
        for article in data["feed"][:ARTICLE_LIMIT]:
            title = (article.get("title") or "").strip()
            if not title:
                continue
            published = article.get("time_published")
            items.append(NewsEntry(
                title=title,
                summary=article.get("summary"),
                url=article.get("url"),
                source=article.get("source") or "Alpha Vantage",
                category=category,
                symbols=[t["ticker"] for t in article.get("ticker_sentiment") or [] if t.get("ticker")],
                sentiment=_clamp(article.get("overall_sentiment_score")),
                published_at=(
                    datetime.strptime(published, "%Y%m%dT%H%M%S").replace(tzinfo=timezone.utc)
                    if published else None
                ),
                external=True,
            ))
        return items
