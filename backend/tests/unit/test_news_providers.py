"""External news providers against mocked HTTP transports."""

import time

import httpx
import pytest

from marketdaily.core.exceptions import ExternalProviderError
from marketdaily.integrations.news.alphavantage import AlphaVantageProvider
from marketdaily.integrations.news.factory import build_news_providers
from marketdaily.integrations.news.finnhub import FinnhubProvider
from marketdaily.integrations.news.newsapi import NewsAPIProvider


def _transport(payload, status_code=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


# ── NewsAPI ──


NEWSAPI_OK = {
    "status": "ok",
    "totalResults": 3,
    "articles": [
        {
            "source": {"id": None, "name": "Reuters"},
            "title": "Chipmakers rally on AI demand",
            "description": "Semiconductor stocks climbed.",
            "url": "https://example.com/a",
            "publishedAt": "2024-03-14T09:30:00Z",
        },
        {"source": {"name": "Removed"}, "title": "[Removed]", "url": "https://example.com/r"},
        {"source": None, "title": "Fed holds rates", "description": None, "url": "https://example.com/b"},
    ],
}


class TestNewsAPIProvider:
    @pytest.mark.asyncio
    async def test_search_normalizes_articles(self):
        seen = []
        provider = NewsAPIProvider(api_key="k", transport=_transport(NEWSAPI_OK, seen=seen))
        items = await provider.search("AI chips", days=14)

        assert [i.title for i in items] == ["Chipmakers rally on AI demand", "Fed holds rates"]
        first = items[0]
        assert first.source == "Reuters"
        assert first.summary == "Semiconductor stocks climbed."
        assert first.category == "external"
        assert first.external is True
        assert first.published_at.year == 2024
        assert items[1].source == "NewsAPI"

        params = seen[0].url.params
        assert seen[0].url.path == "/v2/everything"
        assert params["q"] == "AI chips"
        assert params["pageSize"] == "20"
        assert params["sortBy"] == "publishedAt"
        assert params["apiKey"] == "k"

    @pytest.mark.asyncio
    async def test_company_news_tags_symbol(self):
        seen = []
        provider = NewsAPIProvider(api_key="k", transport=_transport(NEWSAPI_OK, seen=seen))
        items = await provider.company_news("AAPL", days=7)

        assert all(i.symbols == ["AAPL"] for i in items)
        assert all(i.category == "stock" for i in items)
        params = seen[0].url.params
        assert params["q"] == '"AAPL" stock OR "AAPL" shares'
        assert params["pageSize"] == "5"
        assert params["sortBy"] == "relevancy"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        payload = {"status": "error", "code": "apiKeyInvalid", "message": "Your API key is invalid."}
        provider = NewsAPIProvider(api_key="bad", transport=_transport(payload))
        with pytest.raises(ExternalProviderError, match="invalid"):
            await provider.search("anything", days=1)

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        provider = NewsAPIProvider(api_key="k", transport=_transport({}, status_code=429))
        with pytest.raises(httpx.HTTPStatusError):
            await provider.search("anything", days=1)


# ── Finnhub ──


def _finnhub_articles():
    now = int(time.time())
    return [
        {
            "headline": "Apple unveils new chip",
            "summary": "Apple announced its next processor.",
            "url": "https://example.com/f1",
            "source": "CNBC",
            "related": "AAPL",
            "datetime": now - 3600,
        },
        {
            "headline": "Oil prices slide",
            "summary": "Crude fell 3%.",
            "url": "https://example.com/f2",
            "source": "Reuters",
            "related": "",
            "datetime": now - 7200,
        },
        {
            "headline": "Old chip story",
            "summary": "Chip demand from last month.",
            "url": "https://example.com/f3",
            "source": "Reuters",
            "datetime": now - 40 * 86400,
        },
        {"headline": "", "url": "https://example.com/f4"},
    ]


class TestFinnhubProvider:
    @pytest.mark.asyncio
    async def test_search_filters_terms_and_window(self):
        provider = FinnhubProvider(api_key="k", transport=_transport(_finnhub_articles()))
        items = await provider.search("chip", days=7)

        assert [i.title for i in items] == ["Apple unveils new chip"]
        assert items[0].category == "market"
        assert items[0].symbols == ["AAPL"]
        assert items[0].external is True

    @pytest.mark.asyncio
    async def test_company_news(self):
        seen = []
        articles = _finnhub_articles() * 3
        provider = FinnhubProvider(api_key="k", transport=_transport(articles, seen=seen))
        items = await provider.company_news("MSFT", days=7)

        assert len(items) == 5
        assert all(i.symbols == ["MSFT"] for i in items)
        assert all(i.sentiment == 0.0 for i in items)
        assert seen[0].url.path == "/api/v1/company-news"
        assert seen[0].url.params["symbol"] == "MSFT"
        assert seen[0].url.params["token"] == "k"

    @pytest.mark.asyncio
    async def test_company_news_keeps_provider_sentiment(self):
        articles = _finnhub_articles()[:2]
        articles[0]["sentiment"] = 0.8
        provider = FinnhubProvider(api_key="k", transport=_transport(articles))
        items = await provider.company_news("AAPL", days=7)
        assert [i.sentiment for i in items] == [0.8, 0.0]

    @pytest.mark.asyncio
    async def test_non_list_payload_raises(self):
        provider = FinnhubProvider(api_key="k", transport=_transport({"error": "API limit reached"}))
        with pytest.raises(ExternalProviderError):
            await provider.company_news("AAPL", days=7)


# ── Alpha Vantage ──


ALPHAVANTAGE_OK = {
    "items": "2",
    "feed": [
        {
            "title": "Bitcoin climbs past resistance",
            "url": "https://example.com/av1",
            "time_published": "20240314T153000",
            "summary": "Crypto markets rebounded.",
            "source": "CoinDesk",
            "overall_sentiment_score": 0.35,
            "ticker_sentiment": [{"ticker": "COIN"}],
        },
        {
            "title": "Miners under pressure",
            "url": "https://example.com/av2",
            "time_published": "20240313T080000",
            "summary": "Energy costs rise.",
            "overall_sentiment_score": "-3.5",
        },
    ],
}


class TestAlphaVantageProvider:
    @pytest.mark.asyncio
    async def test_search_supported_topic(self):
        seen = []
        provider = AlphaVantageProvider(api_key="k", transport=_transport(ALPHAVANTAGE_OK, seen=seen))
        items = await provider.search("Blockchain", days=14)

        assert len(items) == 2
        assert items[0].sentiment == pytest.approx(0.35)
        assert items[0].symbols == ["COIN"]
        assert items[1].sentiment == -1.0
        assert items[1].source == "Alpha Vantage"
        assert items[0].published_at.day == 14
        assert seen[0].url.params["topics"] == "blockchain"
        assert seen[0].url.params["function"] == "NEWS_SENTIMENT"

    @pytest.mark.asyncio
    async def test_search_unsupported_topic_skips_request(self):
        seen = []
        provider = AlphaVantageProvider(api_key="k", transport=_transport(ALPHAVANTAGE_OK, seen=seen))
        assert await provider.search("quantum widgets", days=14) == []
        assert seen == []

    @pytest.mark.asyncio
    async def test_company_news_adds_symbol(self):
        seen = []
        provider = AlphaVantageProvider(api_key="k", transport=_transport(ALPHAVANTAGE_OK, seen=seen))
        items = await provider.company_news("NVDA", days=7)

        assert all("NVDA" in i.symbols for i in items)
        assert seen[0].url.params["tickers"] == "NVDA"

    @pytest.mark.asyncio
    async def test_rate_limit_note_raises(self):
        payload = {"Information": "Thank you for using Alpha Vantage! Our standard API rate limit is 25 requests per day."}
        provider = AlphaVantageProvider(api_key="k", transport=_transport(payload))
        with pytest.raises(ExternalProviderError, match="rate limit"):
            await provider.company_news("NVDA", days=7)


# ── Factory ──


class TestBuildNewsProviders:
    def test_none_configured(self, settings):
        assert build_news_providers(settings) == []

    def test_only_keyed_providers_enabled(self, settings):
        settings.newsapi_key = "n"
        settings.alphavantage_api_key = "a"
        providers = build_news_providers(settings)
        assert [p.name for p in providers] == ["newsapi", "alphavantage"]

    def test_all_configured_in_query_order(self, settings):
        settings.newsapi_key = "n"
        settings.finnhub_api_key = "f"
        settings.alphavantage_api_key = "a"
        providers = build_news_providers(settings)
        assert [p.name for p in providers] == ["finnhub", "newsapi", "alphavantage"]
