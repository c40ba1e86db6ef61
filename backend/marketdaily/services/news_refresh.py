"""Scheduled news ingestion.

Pulls per-symbol news for every held stock from the external providers,
stores the items not seen before (keyed on URL) and applies the retention
window. Items without a provider score get one from the narrative analyzer.
"""

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from marketdaily.core.metrics import NEWS_INGESTED
from marketdaily.schemas.report import NewsEntry, StockHolding
from marketdaily.services.external_news import MAX_SYMBOLS, ExternalNewsGateway
from marketdaily.services.narrative_analyzer import NarrativeAnalyzer
from marketdaily.services.news_store import NewsStore
from marketdaily.services.portfolio_store import PortfolioStore

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS = {
    "earnings": ("earnings", "revenue", "profit", "loss"),
    "market": ("market", "trading", "index", "dow", "nasdaq", "s&p"),
    "policy": ("fed", "interest rate", "policy", "regulation"),
    "economy": ("gdp", "inflation", "employment", "economic"),
}
DEFAULT_CATEGORY = "general"


def categorize_title(title: str) -> str:
    lowered = title.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return category
    return DEFAULT_CATEGORY


def related_symbols(entry: NewsEntry, holdings: Sequence[StockHolding]) -> list[str]:
    """Provider symbols plus any held stock named in the title or summary."""
    text = f"{entry.title} {entry.summary or ''}"
    lowered = text.lower()
    symbols = set(entry.symbols)
    for stock in holdings:
        if re.search(rf"\b{re.escape(stock.symbol)}\b", text) or stock.name.lower() in lowered:
            symbols.add(stock.symbol)
    return sorted(symbols)


@dataclass
class RefreshSummary:
    symbols: int = 0
    fetched: int = 0
    stored: int = 0
    purged: int = 0

    def as_dict(self) -> dict:
        return {
            "symbols": self.symbols,
            "fetched": self.fetched,
            "stored": self.stored,
            "purged": self.purged,
        }


class NewsRefreshService:
    def __init__(
        self,
        news_store: NewsStore,
        portfolio_store: PortfolioStore,
        gateway: ExternalNewsGateway,
        analyzer: NarrativeAnalyzer,
        retention_days: int = 7,
        lookback_days: int = 1,
    ):
        self._news_store = news_store
        self._portfolio_store = portfolio_store
        self._gateway = gateway
        self._analyzer = analyzer
        self._retention_days = retention_days
        self._lookback_days = lookback_days

    async def refresh(self) -> RefreshSummary:
        summary = RefreshSummary()
        holdings = await self._portfolio_store.all_holdings()
        summary.symbols = len(holdings)

        if holdings and self._gateway.enabled:
            candidates = await self._fetch(holdings)
            summary.fetched = len(candidates)
            summary.stored = await self._store_new(candidates, holdings)
        else:
            logger.info("News refresh: nothing to fetch (holdings=%d, providers=%s)",
                        len(holdings), self._gateway.providers or "none")

        summary.purged = await self._news_store.purge_older_than(self._retention_days)
        logger.info(
            "News refresh finished: %d symbols, %d fetched, %d stored, %d purged",
            summary.symbols, summary.fetched, summary.stored, summary.purged,
        )
        return summary

    async def _fetch(self, holdings: Sequence[StockHolding]) -> list[NewsEntry]:
        symbols = [h.symbol for h in holdings]
        by_url: dict[str, NewsEntry] = {}
        for start in range(0, len(symbols), MAX_SYMBOLS):
            batch = symbols[start:start + MAX_SYMBOLS]
            for entry in await self._gateway.stock_news(batch, days=self._lookback_days):
                if not entry.url:
                    continue
                seen = by_url.get(entry.url)
                if seen is None:
                    by_url[entry.url] = entry
                else:
                    seen.symbols = sorted(set(seen.symbols) | set(entry.symbols))
        return list(by_url.values())

    async def _store_new(self, candidates: Sequence[NewsEntry], holdings: Sequence[StockHolding]) -> int:
        known = await self._news_store.existing_urls(c.url for c in candidates)
        stored = 0
        for entry in candidates:
            if entry.url in known:
                NEWS_INGESTED.labels(outcome="duplicate").inc()
                continue

            sentiment = entry.sentiment
            if not sentiment:
                sentiment = await self._analyzer.score_sentiment(f"{entry.title} {entry.summary or ''}")

            category = entry.category
            if category in (None, "external"):
                category = categorize_title(entry.title)

            added = await self._news_store.add(
                title=entry.title,
                url=entry.url,
                source=entry.source,
                summary=entry.summary,
                category=category,
                symbols=related_symbols(entry, holdings),
                sentiment=sentiment,
                published_at=entry.published_at,
            )
            if added is None:
                NEWS_INGESTED.labels(outcome="duplicate").inc()
                continue
            NEWS_INGESTED.labels(outcome="stored").inc()
            stored += 1
        return stored
