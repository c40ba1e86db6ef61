import httpx

from marketdaily.config import Settings
from marketdaily.integrations.news.alphavantage import AlphaVantageProvider
from marketdaily.integrations.news.base import NewsProvider
from marketdaily.integrations.news.finnhub import FinnhubProvider
from marketdaily.integrations.news.newsapi import NewsAPIProvider

# Query order: later providers' items are appended after earlier ones
PROVIDERS: dict[str, tuple[type[NewsProvider], str]] = {
    "finnhub": (FinnhubProvider, "finnhub_api_key"),
    "newsapi": (NewsAPIProvider, "newsapi_key"),
    "alphavantage": (AlphaVantageProvider, "alphavantage_api_key"),
}


def build_news_providers(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[NewsProvider]:
    """Instantiate every provider whose API key is configured."""
    providers = []
    for provider_cls, key_field in PROVIDERS.values():
        api_key = getattr(settings, key_field)
        if not api_key:
            continue
        providers.append(provider_cls(
            api_key=api_key,
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        ))
    return providers
