from marketdaily.models.base import Base
from marketdaily.models.news import NewsItem
from marketdaily.models.portfolio import Portfolio, PortfolioStock
from marketdaily.models.subscription import EmailSubscription
from marketdaily.models.report import Report, EmailLog

__all__ = [
    "Base", "NewsItem", "Portfolio", "PortfolioStock",
    "EmailSubscription", "Report", "EmailLog",
]
