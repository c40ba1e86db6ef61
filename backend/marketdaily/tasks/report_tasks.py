"""Scheduled report tasks.

Each task builds its own engine and service graph so no async resources are
shared across the event loops ``asyncio.run`` creates per invocation.
"""

import asyncio
import logging

from marketdaily.config import get_settings
from marketdaily.db.session import build_engine, build_session_factory
from marketdaily.services.container import build_services
from marketdaily.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_daily_digest(use_enhanced: bool | None) -> dict:
    settings = get_settings()
    engine = build_engine(settings.database_url)
    try:
        services = build_services(build_session_factory(engine), settings)
        return await services.digest.send_daily_digest(use_enhanced=use_enhanced)
    finally:
        await engine.dispose()


async def _run_news_refresh() -> dict:
    settings = get_settings()
    engine = build_engine(settings.database_url)
    try:
        services = build_services(build_session_factory(engine), settings)
        summary = await services.news_refresh.refresh()
        return summary.as_dict()
    finally:
        await engine.dispose()


@celery_app.task(name="tasks.send_daily_digest")
def send_daily_digest(use_enhanced: bool | None = None):
    """Send every active subscription its digest.

    Runs on EMAIL_SCHEDULE (default 08:00 on weekdays).
    """
    try:
        result = asyncio.run(_run_daily_digest(use_enhanced))
        logger.info(
            "Daily digest finished: %d subscriptions, %d reports",
            result["total"], len(result["reports"]),
        )
        return result
    except Exception as e:
        logger.error("Daily digest failed: %s", e, exc_info=True)
        return {"status": "error", "message": str(e)}


@celery_app.task(name="tasks.refresh_news")
def refresh_news():
    """Fetch news for every held symbol, store new items, apply retention.

    Runs on NEWS_REFRESH_SCHEDULE (default hourly).
    """
    try:
        result = asyncio.run(_run_news_refresh())
        return {"status": "ok", **result}
    except Exception as e:
        logger.error("News refresh failed: %s", e, exc_info=True)
        return {"status": "error", "message": str(e)}
