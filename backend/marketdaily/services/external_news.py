"""Fan-out over the configured external news providers.

Each provider call is isolated: a timeout, HTTP error or malformed payload
is logged and contributes no items, and never aborts the gather. Results are
concatenated in provider order without deduplication.
"""

import asyncio
import logging
from typing import Awaitable, Sequence

from marketdaily.core.metrics import EXTERNAL_NEWS_REQUESTS
from marketdaily.integrations.news.base import NewsProvider
from marketdaily.schemas.report import NewsEntry

logger = logging.getLogger(__name__)

MAX_SYMBOLS = 5
DEFAULT_SYMBOL_DAYS = 7


class ExternalNewsGateway:
    def __init__(self, providers: Sequence[NewsProvider] = ()):
        self._providers = list(providers)

    @property
    def providers(self) -> list[str]:
        return [p.name for p in self._providers]

    @property
    def enabled(self) -> bool:
        return bool(self._providers)

    async def search(self, query: str, days: int) -> list[NewsEntry]:
        """News relevant to a free-text query from every provider."""
        if not self._providers:
            return []
        batches = await asyncio.gather(*(
            self._isolated(p.name, p.search(query, days), query)
            for p in self._providers
        ))
        items = [item for batch in batches for item in batch]
        logger.info("External search %r: %d items from %d providers", query, len(items), len(self._providers))
        return items

    async def stock_news(self, symbols: Sequence[str], days: int = DEFAULT_SYMBOL_DAYS) -> list[NewsEntry]:
        """Per-symbol news for at most the first ``MAX_SYMBOLS`` symbols."""
        if not self._providers or not symbols:
            return []
        targets = list(symbols)[:MAX_SYMBOLS]
        batches = await asyncio.gather(*(
            self._isolated(p.name, p.company_news(symbol, days), symbol)
            for symbol in targets
            for p in self._providers
        ))
        items = [item for batch in batches for item in batch]
        logger.info("External stock news for %s: %d items", ",".join(targets), len(items))
        return items

    async def _isolated(self, provider: str, call: Awaitable[list[NewsEntry]], subject: str) -> list[NewsEntry]:
        try:
            items = await call
        except Exception as e:
            EXTERNAL_NEWS_REQUESTS.labels(provider=provider, status="error").inc()
            logger.warning("News provider %s failed for %r: %s", provider, subject, e)
            return []
        EXTERNAL_NEWS_REQUESTS.labels(provider=provider, status="ok").inc()
        for item in items:
            item.external = True
        return items
