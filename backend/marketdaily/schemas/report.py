"""Assembled report records.

Records are persisted as JSON snapshots (``Report.payload``) and rendered into
emails. ``report_id`` is assigned after persistence and is not part of the
snapshot itself.
"""

import uuid
from datetime import date, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from marketdaily.schemas.analysis import (
    EnhancedAnalysis,
    ExternalNewsAnalysis,
    PortfolioRecommendations,
    TopicAnalysis,
)

DEFAULT_CATEGORY = "general"

CATEGORY_NAMES = {
    "earnings": "Earnings",
    "market": "Market",
    "policy": "Policy",
    "economy": "Economy",
    "general": "General",
    "stock": "Stock News",
    "external": "External",
}


def format_report_date(d: date) -> str:
    """e.g. 'Friday, October 17, 2026'."""
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def category_name(category: str | None) -> str:
    key = category or DEFAULT_CATEGORY
    return CATEGORY_NAMES.get(key, key.replace("-", " ").title())


# ── Building blocks ──


class NewsEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID | None = None
    title: str
    summary: str | None = None
    url: str | None = None
    source: str = ""
    category: str | None = None
    symbols: list[str] = Field(default_factory=list)
    sentiment: float | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None
    external: bool = False


class StockHolding(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    name: str
    sector: str | None = None


class PortfolioInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    is_public: bool = False
    stocks: list[StockHolding] = Field(default_factory=list)


class PublicPortfolio(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    stock_count: int = 0


class PortfolioMetrics(BaseModel):
    weekly_news_count: int = 0
    monthly_news_count: int = 0
    avg_sentiment: float = 0.0
    report_date: date


class SentimentDistribution(BaseModel):
    positive: int = 0
    negative: int = 0
    neutral: int = 0


class RiskAnalysis(BaseModel):
    concentration_risk: str = "low"
    news_risk: str = "low"
    sector_distribution: dict[str, int] = Field(default_factory=dict)
    sentiment_distribution: SentimentDistribution = Field(default_factory=SentimentDistribution)


class TrendingTopic(BaseModel):
    keyword: str
    count: int


class CategoryTrend(BaseModel):
    category: str
    count: int
    trend: Literal["hot", "normal", "low"]


# ── Reports ──


class BaseReport(BaseModel):
    report_id: uuid.UUID | None = Field(default=None, exclude=True)
    report_date: date
    formatted_date: str


class PortfolioReport(BaseReport):
    type: Literal["portfolio"] = "portfolio"
    portfolio: PortfolioInfo
    total_news: int = 0
    portfolio_news: list[NewsEntry] = Field(default_factory=list)
    news_by_category: dict[str, list[NewsEntry]] = Field(default_factory=dict)
    market_sentiment: float = 0.0
    metrics: PortfolioMetrics
    ai_recommendations: PortfolioRecommendations | None = None
    risk_analysis: RiskAnalysis = Field(default_factory=RiskAnalysis)
    is_empty: bool = False
    advisory: str | None = None


class EnhancedPortfolioReport(PortfolioReport):
    type: Literal["enhanced-portfolio"] = "enhanced-portfolio"
    external_news: list[NewsEntry] = Field(default_factory=list)
    external_analysis: ExternalNewsAnalysis | None = None
    enhanced_analysis: EnhancedAnalysis | None = None
    total_external_news: int = 0
    data_source: Literal["enhanced"] = "enhanced"


class TopicResearchReport(BaseReport):
    type: Literal["topic-research"] = "topic-research"
    topic: str
    days: int
    date_range: str
    news_count: int = 0
    local_news_count: int = 0
    external_news_count: int = 0
    news: list[NewsEntry] = Field(default_factory=list)
    sentiment: float = 0.0
    has_data: bool = True
    research: TopicAnalysis


class GeneralReport(BaseReport):
    type: Literal["general"] = "general"
    total_news: int = 0
    news_by_category: dict[str, list[NewsEntry]] = Field(default_factory=dict)
    market_sentiment: float = 0.0
    public_portfolios: list[PublicPortfolio] = Field(default_factory=list)
    market_overview: str = ""
    trending_topics: list[TrendingTopic] = Field(default_factory=list)
    market_trends: list[CategoryTrend] = Field(default_factory=list)
    is_general: bool = True


AnyReport = Annotated[
    Union[PortfolioReport, EnhancedPortfolioReport, TopicResearchReport, GeneralReport],
    Field(discriminator="type"),
]

_report_adapter: TypeAdapter[AnyReport] = TypeAdapter(AnyReport)


def load_report(payload: dict, report_id: uuid.UUID | None = None) -> BaseReport:
    """Rebuild a report record from a stored snapshot."""
    report = _report_adapter.validate_python(payload)
    report.report_id = report_id
    return report
