"""Report assembly: local news -> external news -> sentiment -> narrative -> persist.

Four report kinds are produced: portfolio, enhanced portfolio, topic research
and general market. Data-layer errors propagate to the caller; narrative and
external-provider failures are absorbed by their components, and any failure
in the enhancement steps degrades to the basic portfolio report.
"""

import logging
import uuid
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, Sequence

from marketdaily.core.exceptions import PortfolioNotFoundError
from marketdaily.core.metrics import REPORT_GENERATION_DURATION, REPORTS_GENERATED
from marketdaily.schemas.analysis import TopicAnalysis
from marketdaily.schemas.report import (
    DEFAULT_CATEGORY,
    BaseReport,
    CategoryTrend,
    EnhancedPortfolioReport,
    GeneralReport,
    NewsEntry,
    PortfolioInfo,
    PortfolioMetrics,
    PortfolioReport,
    RiskAnalysis,
    SentimentDistribution,
    StockHolding,
    TopicResearchReport,
    format_report_date,
)
from marketdaily.services.external_news import ExternalNewsGateway
from marketdaily.services.narrative_analyzer import NarrativeAnalyzer
from marketdaily.services.news_store import NewsStore
from marketdaily.services.portfolio_store import PortfolioStore
from marketdaily.services.report_store import ReportStore
from marketdaily.services.sentiment import average_sentiment, sentiment_distribution
from marketdaily.services.trending_topics import extract_trending_topics

logger = logging.getLogger(__name__)

RECENT_PORTFOLIO_NEWS = 30
ENHANCED_NEWS_CAP = 20
EXTERNAL_NEWS_DISPLAY = 10
EXTERNAL_LOOKBACK_DAYS = 7
TOPIC_LOCAL_LIMIT = 30
TOPIC_NEWS_CAP = 50
DEFAULT_TOPIC_DAYS = 14
GENERAL_NEWS_LIMIT = 15
PUBLIC_PORTFOLIO_LIMIT = 5
WEEKLY_WINDOW = timedelta(days=7)
MONTHLY_WINDOW = timedelta(days=30)
SECTOR_CONCENTRATION_THRESHOLD = 0.5

EMPTY_PORTFOLIO_ADVISORY = "Add stocks to this portfolio to receive a report."
UNKNOWN_SECTOR = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def group_by_category(news: Iterable[NewsEntry]) -> dict[str, list[NewsEntry]]:
    grouped: dict[str, list[NewsEntry]] = {}
    for item in news:
        grouped.setdefault(item.category or DEFAULT_CATEGORY, []).append(item)
    return grouped


def analyze_risk(stocks: Sequence[StockHolding], news: Sequence[NewsEntry]) -> RiskAnalysis:
    """Sector concentration and news-sentiment risk.

    Concentration is "high" when any one sector holds more than half of the
    positions. News risk is "high" when negative items outnumber positive
    ones and "low" when there are no negative items.
    """
    sectors = Counter(s.sector or UNKNOWN_SECTOR for s in stocks)
    concentrated = bool(stocks) and any(
        count / len(stocks) > SECTOR_CONCENTRATION_THRESHOLD for count in sectors.values()
    )

    dist = sentiment_distribution(n.sentiment for n in news)
    if dist["negative"] > dist["positive"]:
        news_risk = "high"
    elif dist["negative"] == 0:
        news_risk = "low"
    else:
        news_risk = "medium"

    return RiskAnalysis(
        concentration_risk="high" if concentrated else "medium",
        news_risk=news_risk,
        sector_distribution=dict(sectors),
        sentiment_distribution=SentimentDistribution(**dist),
    )


def market_trends(news_by_category: dict[str, list[NewsEntry]]) -> list[CategoryTrend]:
    trends = []
    for category, items in news_by_category.items():
        count = len(items)
        trend = "hot" if count > 5 else "normal" if count > 2 else "low"
        trends.append(CategoryTrend(category=category, count=count, trend=trend))
    trends.sort(key=lambda t: t.count, reverse=True)
    return trends


def report_title(report: BaseReport) -> str:
    if isinstance(report, EnhancedPortfolioReport):
        return f"Enhanced Portfolio Report - {report.portfolio.name}"
    if isinstance(report, PortfolioReport):
        return f"Portfolio Report - {report.portfolio.name}"
    if isinstance(report, TopicResearchReport):
        return f"Topic Research Report - {report.topic}"
    return "General Market Report"


class ReportAssembler:
    def __init__(
        self,
        news_store: NewsStore,
        portfolio_store: PortfolioStore,
        report_store: ReportStore,
        analyzer: NarrativeAnalyzer,
        gateway: ExternalNewsGateway,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._news = news_store
        self._portfolios = portfolio_store
        self._reports = report_store
        self._analyzer = analyzer
        self._gateway = gateway
        self._clock = clock

    # ── Assemble + persist ──

    async def assemble_portfolio_report(
        self,
        portfolio_id: uuid.UUID,
        report_date: date | None = None,
        user_id: uuid.UUID | None = None,
    ) -> PortfolioReport:
        with REPORT_GENERATION_DURATION.labels(report_type="portfolio").time():
            report = await self.portfolio_report(portfolio_id, report_date)
        return await self._persist(report, user_id=user_id)

    async def assemble_enhanced_portfolio_report(
        self,
        portfolio_id: uuid.UUID,
        report_date: date | None = None,
        user_id: uuid.UUID | None = None,
    ) -> PortfolioReport:
        """Enhanced report, or the basic one if enhancement was not possible."""
        with REPORT_GENERATION_DURATION.labels(report_type="enhanced-portfolio").time():
            report = await self.enhanced_portfolio_report(portfolio_id, report_date)
        return await self._persist(report, user_id=user_id)

    async def assemble_topic_report(
        self,
        topic: str,
        days: int = DEFAULT_TOPIC_DAYS,
        user_id: uuid.UUID | None = None,
    ) -> TopicResearchReport:
        with REPORT_GENERATION_DURATION.labels(report_type="topic-research").time():
            report = await self.topic_report(topic, days)
        return await self._persist(report, user_id=user_id)

    async def assemble_general_report(
        self,
        report_date: date | None = None,
        user_id: uuid.UUID | None = None,
    ) -> GeneralReport:
        with REPORT_GENERATION_DURATION.labels(report_type="general").time():
            report = await self.general_report(report_date)
        return await self._persist(report, user_id=user_id)

    # ── Builders ──

    async def portfolio_report(self, portfolio_id: uuid.UUID, report_date: date | None = None) -> PortfolioReport:
        portfolio = await self._portfolios.get(portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)

        now = self._clock()
        day = report_date or now.date()
        if not portfolio.stocks:
            logger.info("Portfolio %s has no holdings, returning empty report", portfolio.name)
            return self._empty_portfolio_report(portfolio, day)

        symbols = {s.symbol for s in portfolio.stocks}
        if report_date is not None:
            start, end = _day_bounds(report_date)
            candidates = await self._news.created_between(start, end)
            anchor = end
        else:
            candidates = await self._news.recent(RECENT_PORTFOLIO_NEWS)
            anchor = now

        portfolio_news = [n for n in candidates if symbols.intersection(n.symbols)]
        metrics = await self._metrics(symbols, anchor, day)
        recommendations = await self._analyzer.recommend_for_portfolio(
            portfolio.stocks, portfolio_news, metrics,
        )

        logger.info(
            "Portfolio report for %s: %d related of %d candidate news",
            portfolio.name, len(portfolio_news), len(candidates),
        )
        return PortfolioReport(
            report_date=day,
            formatted_date=format_report_date(day),
            portfolio=portfolio,
            total_news=len(portfolio_news),
            portfolio_news=portfolio_news,
            news_by_category=group_by_category(portfolio_news),
            market_sentiment=average_sentiment(n.sentiment for n in portfolio_news),
            metrics=metrics,
            ai_recommendations=recommendations,
            risk_analysis=analyze_risk(portfolio.stocks, portfolio_news),
        )

    async def enhanced_portfolio_report(
        self,
        portfolio_id: uuid.UUID,
        report_date: date | None = None,
    ) -> PortfolioReport:
        basic = await self.portfolio_report(portfolio_id, report_date)
        if basic.is_empty:
            return basic

        try:
            symbols = [s.symbol for s in basic.portfolio.stocks]
            external = await self._gateway.stock_news(symbols, days=EXTERNAL_LOOKBACK_DAYS)
            external_analysis = await self._analyzer.analyze_external_news(external)

            merged = basic.portfolio_news + external
            enhanced_analysis = await self._analyzer.analyze_enhanced(
                basic.portfolio.stocks, merged, basic.metrics,
            )

            fields = {name: getattr(basic, name) for name in PortfolioReport.model_fields if name != "type"}
            fields.update(
                portfolio_news=merged[:ENHANCED_NEWS_CAP],
                news_by_category=group_by_category(merged[:ENHANCED_NEWS_CAP]),
                market_sentiment=average_sentiment(n.sentiment for n in merged),
                external_news=external[:EXTERNAL_NEWS_DISPLAY],
                external_analysis=external_analysis,
                enhanced_analysis=enhanced_analysis,
                total_external_news=len(external),
            )
            return EnhancedPortfolioReport(**fields)
        except Exception as e:
            logger.warning(
                "Enhancement failed for portfolio %s, falling back to basic report: %s",
                basic.portfolio.name, e, exc_info=True,
            )
            return basic

    async def topic_report(self, topic: str, days: int = DEFAULT_TOPIC_DAYS) -> TopicResearchReport:
        topic = topic.strip()
        now = self._clock()
        day = now.date()
        local = await self._news.search(topic, since=now - timedelta(days=days), limit=TOPIC_LOCAL_LIMIT)
        external = await self._gateway.search(topic, days)
        merged = local + external

        common = dict(
            topic=topic,
            days=days,
            report_date=day,
            formatted_date=format_report_date(day),
            date_range=f"past {days} days",
            local_news_count=len(local),
            external_news_count=len(external),
        )
        if not merged:
            logger.info("No news found for topic %r", topic)
            return TopicResearchReport(
                **common,
                news_count=0,
                sentiment=0.0,
                has_data=False,
                research=TopicAnalysis.no_data(topic),
            )

        research = await self._analyzer.analyze_topic(topic, merged)
        return TopicResearchReport(
            **common,
            news_count=len(merged),
            news=merged[:TOPIC_NEWS_CAP],
            sentiment=average_sentiment(n.sentiment for n in merged),
            research=research,
        )

    async def general_report(self, report_date: date | None = None) -> GeneralReport:
        day = report_date or self._clock().date()
        recent = await self._news.recent(GENERAL_NEWS_LIMIT)
        by_category = group_by_category(recent)
        public = await self._portfolios.list_public(PUBLIC_PORTFOLIO_LIMIT)
        overview = await self._analyzer.market_overview(recent)

        return GeneralReport(
            report_date=day,
            formatted_date=format_report_date(day),
            total_news=len(recent),
            news_by_category=by_category,
            market_sentiment=average_sentiment(n.sentiment for n in recent),
            public_portfolios=public,
            market_overview=overview,
            trending_topics=extract_trending_topics(n.title for n in recent),
            market_trends=market_trends(by_category),
        )

    # ── Internals ──

    async def _metrics(self, symbols: set[str], anchor: datetime, day: date) -> PortfolioMetrics:
        weekly_count, weekly_sentiment = await self._news.related_stats(symbols, anchor - WEEKLY_WINDOW, anchor)
        monthly_count, _ = await self._news.related_stats(symbols, anchor - MONTHLY_WINDOW, anchor)
        return PortfolioMetrics(
            weekly_news_count=weekly_count,
            monthly_news_count=monthly_count,
            avg_sentiment=weekly_sentiment,
            report_date=day,
        )

    @staticmethod
    def _empty_portfolio_report(portfolio: PortfolioInfo, day: date) -> PortfolioReport:
        return PortfolioReport(
            report_date=day,
            formatted_date=format_report_date(day),
            portfolio=portfolio,
            metrics=PortfolioMetrics(report_date=day),
            risk_analysis=RiskAnalysis(concentration_risk="low", news_risk="low"),
            is_empty=True,
            advisory=EMPTY_PORTFOLIO_ADVISORY,
        )

    async def _persist(self, report: BaseReport, user_id: uuid.UUID | None) -> BaseReport:
        portfolio_id = report.portfolio.id if isinstance(report, PortfolioReport) else None
        topic = report.topic if isinstance(report, TopicResearchReport) else None
        days = report.days if isinstance(report, TopicResearchReport) else None

        report.report_id = await self._reports.save(
            type=report.type,
            title=report_title(report),
            payload=report.model_dump(mode="json"),
            portfolio_id=portfolio_id,
            user_id=user_id,
            topic=topic,
            days=days,
        )
        REPORTS_GENERATED.labels(report_type=report.type).inc()
        logger.info("Saved %s report %s", report.type, report.report_id)
        return report
