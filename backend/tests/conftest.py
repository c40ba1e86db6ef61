import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from marketdaily.config import Settings
from marketdaily.db.session import build_session_factory, init_models
from marketdaily.services.email_log_store import EmailLogStore
from marketdaily.services.news_store import NewsStore
from marketdaily.services.portfolio_store import PortfolioStore
from marketdaily.services.report_store import ReportStore
from marketdaily.services.subscription_store import SubscriptionStore

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        openai_api_key="",
        newsapi_key="",
        finnhub_api_key="",
        alphavantage_api_key="",
        smtp_host="",
        admin_email="",
    )


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def news_store(session_factory):
    return NewsStore(session_factory)


@pytest.fixture
def portfolio_store(session_factory):
    return PortfolioStore(session_factory)


@pytest.fixture
def report_store(session_factory):
    return ReportStore(session_factory)


@pytest.fixture
def email_log_store(session_factory):
    return EmailLogStore(session_factory)


@pytest.fixture
def subscription_store(session_factory):
    return SubscriptionStore(session_factory)


def make_llm_client(*contents: str):
    """AsyncOpenAI stand-in returning the given reply texts in order."""
    responses = []
    for content in contents:
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content=content))]
        response.usage = MagicMock(prompt_tokens=100, completion_tokens=50, total_tokens=150)
        responses.append(response)

    client = MagicMock()
    if len(responses) == 1:
        client.chat.completions.create = AsyncMock(return_value=responses[0])
    else:
        client.chat.completions.create = AsyncMock(side_effect=responses)
    return client


@pytest.fixture
def llm_client_factory():
    return make_llm_client
