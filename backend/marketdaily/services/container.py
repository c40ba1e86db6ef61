"""Explicitly wired service graph, built once per process (API lifespan or
Celery task) and passed to callers instead of module-level singletons."""

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdaily.config import Settings, get_settings
from marketdaily.integrations.email.smtp import SmtpTransport
from marketdaily.integrations.news.factory import build_news_providers
from marketdaily.services.digest_service import DigestService
from marketdaily.services.email_dispatcher import EmailDispatcher, EmailTransport
from marketdaily.services.email_log_store import EmailLogStore
from marketdaily.services.external_news import ExternalNewsGateway
from marketdaily.services.narrative_analyzer import NarrativeAnalyzer
from marketdaily.services.news_refresh import NewsRefreshService
from marketdaily.services.news_store import NewsStore
from marketdaily.services.portfolio_store import PortfolioStore
from marketdaily.services.report_assembler import ReportAssembler
from marketdaily.services.report_store import ReportStore
from marketdaily.services.subscription_store import SubscriptionStore


@dataclass
class Services:
    settings: Settings
    news_store: NewsStore
    portfolio_store: PortfolioStore
    report_store: ReportStore
    email_log_store: EmailLogStore
    subscription_store: SubscriptionStore
    analyzer: NarrativeAnalyzer
    gateway: ExternalNewsGateway
    assembler: ReportAssembler
    dispatcher: EmailDispatcher
    digest: DigestService
    news_refresh: NewsRefreshService


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    analyzer: NarrativeAnalyzer | None = None,
    transport: EmailTransport | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    """Wire the service graph. Collaborators can be substituted for tests."""
    settings = settings or get_settings()

    news_store = NewsStore(session_factory)
    portfolio_store = PortfolioStore(session_factory)
    report_store = ReportStore(session_factory)
    email_log_store = EmailLogStore(session_factory)
    subscription_store = SubscriptionStore(session_factory)

    analyzer = analyzer or NarrativeAnalyzer.from_settings(settings)
    gateway = ExternalNewsGateway(build_news_providers(settings, transport=http_transport))
    assembler = ReportAssembler(news_store, portfolio_store, report_store, analyzer, gateway)
    dispatcher = EmailDispatcher(
        transport or SmtpTransport(settings),
        email_log_store,
        max_concurrency=settings.dispatch_concurrency,
        admin_email=settings.admin_email,
    )
    digest = DigestService(assembler, dispatcher, report_store, subscription_store, settings)
    news_refresh = NewsRefreshService(
        news_store,
        portfolio_store,
        gateway,
        analyzer,
        retention_days=settings.news_retention_days,
        lookback_days=settings.news_refresh_lookback_days,
    )

    return Services(
        settings=settings,
        news_store=news_store,
        portfolio_store=portfolio_store,
        report_store=report_store,
        email_log_store=email_log_store,
        subscription_store=subscription_store,
        analyzer=analyzer,
        gateway=gateway,
        assembler=assembler,
        dispatcher=dispatcher,
        digest=digest,
        news_refresh=news_refresh,
    )
