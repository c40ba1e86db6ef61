from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "Market Daily"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/market_daily.db"

    # Redis (Celery broker / result backend)
    redis_url: str = "redis://localhost:6379/0"

    # LLM (empty key = narrative analysis disabled, fallback records only)
    openai_api_key: str = ""
    openai_model: str = "gpt-3.5-turbo"
    openai_base_url: str | None = None
    llm_timeout_seconds: float = 60.0
    llm_temperature: float = 0.3

    # External news providers (enabled by key presence)
    newsapi_key: str = ""
    finnhub_api_key: str = ""
    alphavantage_api_key: str = ""
    provider_timeout_seconds: float = 10.0

    # SMTP (Email delivery)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@market-daily.local"
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 10.0

    # Digest
    admin_email: str = ""
    email_schedule: str = "0 8 * * 1-5"   # cron: minute hour day month day_of_week
    use_enhanced_daily_report: bool = False
    dispatch_concurrency: int = 1         # 1 = sequential sends
    news_retention_days: int = 7
    news_refresh_schedule: str = "0 * * * *"
    news_refresh_lookback_days: int = 1
    timezone: str = "UTC"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
