"""Prometheus metrics for the Market Daily report pipeline.

Business metrics: reports generated, emails delivered
System metrics: LLM calls, external news providers, HTTP requests
"""

from prometheus_client import Counter, Histogram, Info

# ── Business Metrics ─────────────────────────────────────────

REPORTS_GENERATED = Counter(
    "marketdaily_reports_generated_total",
    "Total reports assembled and persisted",
    ["report_type"],
)

REPORT_GENERATION_DURATION = Histogram(
    "marketdaily_report_generation_seconds",
    "Report assembly duration",
    ["report_type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

EMAILS_SENT = Counter(
    "marketdaily_emails_total",
    "Email delivery attempts by outcome",
    ["status"],
)

NEWS_INGESTED = Counter(
    "marketdaily_news_ingested_total",
    "News items handled by the scheduled refresh",
    ["outcome"],
)

# ── System Metrics ───────────────────────────────────────────

LLM_REQUESTS = Counter(
    "marketdaily_llm_requests_total",
    "Narrative analysis requests",
    ["operation", "status"],
)

LLM_LATENCY = Histogram(
    "marketdaily_llm_latency_seconds",
    "Chat completion latency",
    ["operation"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

EXTERNAL_NEWS_REQUESTS = Counter(
    "marketdaily_external_news_requests_total",
    "External news provider requests",
    ["provider", "status"],
)

HTTP_REQUESTS = Counter(
    "marketdaily_http_requests_total",
    "Total HTTP requests to the API",
    ["method", "path", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "marketdaily_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

APP_INFO = Info("marketdaily_app", "Market Daily application info")
