import json
import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from marketdaily.config import get_settings
from marketdaily.db.session import async_session_factory, engine, init_models
from marketdaily.api.v1.router import api_router
from marketdaily.services.container import build_services


# ── JSON Structured Logging ──────────────────────────────────


class JSONFormatter(logging.Formatter):
    """Outputs log records as single-line JSON for production log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging():
    """Configure structured JSON logging (human-readable in debug mode)."""
    settings = get_settings()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.debug:
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    else:
        handler.setFormatter(JSONFormatter())

    root.handlers = [handler]

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


logger = logging.getLogger("marketdaily")


# ── Lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    from marketdaily.core.metrics import APP_INFO
    APP_INFO.info({"version": "0.1.0", "name": "Market Daily"})
    await init_models(engine)
    app.state.services = build_services(async_session_factory)
    services = app.state.services
    logger.info(
        "Market Daily starting up (llm=%s, news providers=%s, smtp=%s)",
        services.analyzer.is_configured,
        services.gateway.providers or "none",
        bool(services.settings.smtp_host),
    )
    yield
    logger.info("Market Daily shutting down")
    await engine.dispose()


# ── App Factory ──────────────────────────────────────────────


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "## Market Daily\n\n"
            "Portfolio news aggregation, sentiment scoring and AI-written "
            "digest reports delivered by email.\n\n"
            "- **Portfolio reports**: related news, sentiment, metrics, risk analysis\n"
            "- **Enhanced reports**: adds external news providers and in-depth analysis\n"
            "- **Topic research**: local + external coverage of a free-text topic\n"
            "- **General report**: market overview, trending topics, public portfolios\n"
        ),
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "reports", "description": "Report assembly, delivery and history"},
            {"name": "subscriptions", "description": "Daily digest subscriptions"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        from marketdaily.core.metrics import HTTP_REQUESTS, HTTP_REQUEST_DURATION

        start = time.monotonic()
        response: Response = await call_next(request)
        duration = time.monotonic() - start

        path = request.url.path
        # Collapse parameterized paths for cardinality control
        if "/api/v1/" in path:
            parts = path.split("/")
            # Replace UUID-like segments
            parts = [
                "<id>" if len(p) > 20 and "-" in p else p
                for p in parts
            ]
            path = "/".join(parts)

        HTTP_REQUESTS.labels(
            method=request.method,
            path=path,
            status_code=str(response.status_code),
        ).inc()
        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            path=path,
        ).observe(duration)

        return response

    app.include_router(api_router, prefix="/api/v1")

    # ── Prometheus metrics endpoint ──────────────────────────

    @app.get("/metrics")
    async def metrics():
        from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
        )

    # ── Health check ─────────────────────────────────────────

    @app.get("/health")
    async def health():
        from sqlalchemy import text

        checks = {"status": "ok"}
        overall_ok = True

        # DB check
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            checks["database"] = f"error: {e}"
            overall_ok = False

        # Redis check (Celery broker)
        try:
            import redis.asyncio as aioredis
            r = aioredis.from_url(settings.redis_url)
            await r.ping()
            await r.aclose()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"
            overall_ok = False

        services = getattr(app.state, "services", None)
        if services is not None:
            checks["llm"] = "configured" if services.analyzer.is_configured else "fallback"
            checks["news_providers"] = services.gateway.providers
            checks["smtp"] = "configured" if services.settings.smtp_host else "disabled"

        checks["status"] = "ok" if overall_ok else "degraded"
        return checks

    return app


app = create_app()
