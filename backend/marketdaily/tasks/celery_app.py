from celery import Celery
from celery.schedules import crontab
from marketdaily.config import get_settings

settings = get_settings()


def crontab_from_expression(expression: str) -> crontab:
    """Build a celery crontab from a 5-field cron expression."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Expected 5 cron fields, got {len(fields)}: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


celery_app = Celery(
    "marketdaily",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["marketdaily.tasks.report_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.timezone,
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    # Resilience settings
    task_soft_time_limit=900,      # 15 min soft limit (raises SoftTimeLimitExceeded)
    task_time_limit=960,
    worker_max_tasks_per_child=100,

    task_routes={
        "tasks.send_daily_digest": {"queue": "periodic"},
        "tasks.refresh_news": {"queue": "periodic"},
    },

    # Overlapping runs are not guarded here; run a single beat instance
    beat_schedule={
        "daily-digest": {
            "task": "tasks.send_daily_digest",
            "schedule": crontab_from_expression(settings.email_schedule),
        },
        "refresh-news": {
            "task": "tasks.refresh_news",
            "schedule": crontab_from_expression(settings.news_refresh_schedule),
        },
    },
)
