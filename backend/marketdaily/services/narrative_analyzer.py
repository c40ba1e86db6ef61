"""LLM-backed narrative analysis of news batches.

Every operation makes at most one chat-completion call over a bounded window
of news items and returns a validated record. Failures of any kind (missing
API key, timeout, transport error, non-JSON reply, schema mismatch) degrade to
the record's fallback; nothing here raises to the caller.
"""

import json
import logging
import math
import re
import time
from typing import Sequence, TypeVar

from openai import AsyncOpenAI
from pydantic import ValidationError

from marketdaily.config import Settings
from marketdaily.core.metrics import LLM_LATENCY, LLM_REQUESTS
from marketdaily.schemas.analysis import (
    AnalysisRecord,
    EnhancedAnalysis,
    ExternalNewsAnalysis,
    PortfolioRecommendations,
    TopicAnalysis,
)
from marketdaily.schemas.report import NewsEntry, PortfolioMetrics, StockHolding

logger = logging.getLogger(__name__)

MAX_NEWS_WINDOW = 20

RECOMMENDATION_WINDOW = 5
ENHANCED_WINDOW = 15
EXTERNAL_WINDOW = 10
TOPIC_WINDOW = 20
OVERVIEW_WINDOW = 8

MARKET_OVERVIEW_UNAVAILABLE = "Market overview unavailable"
NO_MARKET_NEWS = "No market news available for this period."

_SYSTEM_PROMPT = (
    "You are a professional financial analyst writing for a daily investment "
    "newsletter. Base every statement on the supplied news only. "
    "Respond with a single JSON object and nothing else."
)

_SENTIMENT_PROMPT = (
    "Rate the sentiment of this financial news text as a single number between "
    "-1 (very negative) and 1 (very positive), 0 being neutral. Reply with the number only."
)
SENTIMENT_TEXT_LIMIT = 1000

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

R = TypeVar("R", bound=AnalysisRecord)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    match = _CODE_FENCE.match(text)
    return match.group(1) if match else text


def _news_lines(news: Sequence[NewsEntry], window: int) -> str:
    lines = []
    for i, item in enumerate(news[:min(window, MAX_NEWS_WINDOW)], 1):
        origin = "external" if item.external else "local"
        summary = (item.summary or "").strip()
        line = f"{i}. [{origin}] {item.title}"
        if summary:
            line += f": {summary[:300]}"
        lines.append(line)
    return "\n".join(lines) if lines else "(no news items)"


def _holdings_lines(stocks: Sequence[StockHolding]) -> str:
    return "\n".join(
        f"- {s.symbol}: {s.name}" + (f" ({s.sector})" if s.sector else "")
        for s in stocks
    )


def _json_contract(fields: dict[str, str]) -> str:
    return "Return JSON with exactly these fields:\n" + json.dumps(fields, indent=2)


class NarrativeAnalyzer:
    """Structured narrative analysis over a chat-completion model."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str = "gpt-3.5-turbo",
        temperature: float = 0.3,
    ):
        self._client = client
        self._model = model
        self._temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "NarrativeAnalyzer":
        client = None
        if settings.openai_api_key:
            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )
        else:
            logger.info("OPENAI_API_KEY not set, narrative analysis will use fallbacks")
        return cls(client, model=settings.openai_model, temperature=settings.llm_temperature)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    # ── Operations ──

    async def recommend_for_portfolio(
        self,
        stocks: Sequence[StockHolding],
        news: Sequence[NewsEntry],
        metrics: PortfolioMetrics | None = None,
    ) -> PortfolioRecommendations:
        prompt = (
            f"Portfolio holdings:\n{_holdings_lines(stocks)}\n\n"
            f"Related news:\n{_news_lines(news, RECOMMENDATION_WINDOW)}\n"
        )
        if metrics is not None:
            prompt += (
                f"\nRelated news last 7 days: {metrics.weekly_news_count}, "
                f"last 30 days: {metrics.monthly_news_count}, "
                f"7-day average sentiment: {metrics.avg_sentiment:.2f}\n"
            )
        prompt += "\n" + _json_contract({
            "recommendations": "list of 3-5 short investment suggestions",
            "risk_level": "low | medium | high",
            "summary": "one paragraph overall assessment",
        })
        return await self._structured(
            "portfolio_recommendations", PortfolioRecommendations, prompt, max_tokens=400,
        )

    async def analyze_enhanced(
        self,
        stocks: Sequence[StockHolding],
        news: Sequence[NewsEntry],
        metrics: PortfolioMetrics | None = None,
    ) -> EnhancedAnalysis:
        prompt = (
            f"Portfolio holdings:\n{_holdings_lines(stocks)}\n\n"
            f"News from internal and external sources:\n{_news_lines(news, ENHANCED_WINDOW)}\n"
        )
        if metrics is not None:
            prompt += f"\n7-day average sentiment: {metrics.avg_sentiment:.2f}\n"
        prompt += "\n" + _json_contract({
            "summary": "in-depth portfolio assessment",
            "recommendations": "list of at most 5 concrete suggestions",
            "risk_assessment": "low | medium | high | critical",
            "market_outlook": "short-term outlook for these holdings",
            "action_items": "list of at most 3 immediate actions",
        })
        return await self._structured("enhanced_analysis", EnhancedAnalysis, prompt, max_tokens=800)

    async def analyze_external_news(self, news: Sequence[NewsEntry]) -> ExternalNewsAnalysis:
        if not news:
            return ExternalNewsAnalysis.fallback()
        prompt = (
            f"External market news:\n{_news_lines(news, EXTERNAL_WINDOW)}\n\n"
            + _json_contract({
                "summary": "what the external coverage says",
                "key_trends": "list of notable trends",
                "sentiment": "positive | negative | neutral",
                "risk_factors": "list of risks mentioned",
            })
        )
        return await self._structured("external_news", ExternalNewsAnalysis, prompt, max_tokens=600)

    async def analyze_topic(self, topic: str, news: Sequence[NewsEntry]) -> TopicAnalysis:
        if not news:
            return TopicAnalysis.fallback()
        prompt = (
            f"Research topic: {topic}\n\n"
            f"News coverage:\n{_news_lines(news, TOPIC_WINDOW)}\n\n"
            + _json_contract({
                "summary": "executive summary of the topic",
                "analysis": "detailed analysis paragraph",
                "trends": "list of observed trends",
                "recommendations": "list of investment recommendations",
                "risk_factors": "list of risks",
                "opportunities": "list of opportunities",
            })
        )
        return await self._structured("topic_research", TopicAnalysis, prompt, max_tokens=1000)

    async def market_overview(self, news: Sequence[NewsEntry]) -> str:
        """Plain-text market summary (no JSON contract)."""
        if not news:
            return NO_MARKET_NEWS
        if self._client is None:
            LLM_REQUESTS.labels(operation="market_overview", status="unconfigured").inc()
            return MARKET_OVERVIEW_UNAVAILABLE

        titles = "\n".join(f"- {n.title}" for n in news[:OVERVIEW_WINDOW])
        prompt = (
            "Write a concise market overview (3-4 sentences) based on these headlines:\n"
            f"{titles}"
        )
        try:
            text = await self._complete(
                "market_overview",
                "You are a financial journalist. Answer in plain text.",
                prompt,
                max_tokens=300,
            )
        except Exception as e:
            LLM_REQUESTS.labels(operation="market_overview", status="error").inc()
            logger.warning("Market overview generation failed: %s", e)
            return MARKET_OVERVIEW_UNAVAILABLE

        text = text.strip()
        if not text:
            LLM_REQUESTS.labels(operation="market_overview", status="invalid").inc()
            return MARKET_OVERVIEW_UNAVAILABLE
        LLM_REQUESTS.labels(operation="market_overview", status="ok").inc()
        return text

    async def score_sentiment(self, text: str) -> float:
        """Sentiment of a news text in [-1, 1]; 0.0 when it cannot be scored."""
        if self._client is None or not text.strip():
            return 0.0
        try:
            reply = await self._complete(
                "news_sentiment",
                _SENTIMENT_PROMPT,
                text[:SENTIMENT_TEXT_LIMIT],
                max_tokens=10,
                temperature=0.0,
            )
            score = float(reply.strip())
        except ValueError:
            LLM_REQUESTS.labels(operation="news_sentiment", status="invalid").inc()
            return 0.0
        except Exception as e:
            LLM_REQUESTS.labels(operation="news_sentiment", status="error").inc()
            logger.warning("Sentiment scoring failed: %s", e)
            return 0.0

        if math.isnan(score):
            LLM_REQUESTS.labels(operation="news_sentiment", status="invalid").inc()
            return 0.0
        LLM_REQUESTS.labels(operation="news_sentiment", status="ok").inc()
        return max(-1.0, min(1.0, score))

    # ── Internals ──

    async def _complete(
        self,
        operation: str,
        system: str,
        prompt: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> str:
        start = time.monotonic()
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=self._temperature if temperature is None else temperature,
            max_tokens=max_tokens,
        )
        elapsed = time.monotonic() - start
        LLM_LATENCY.labels(operation=operation).observe(elapsed)

        usage = response.usage
        logger.info(
            "LLM %s completed in %.2fs (model %s, tokens %s)",
            operation,
            elapsed,
            self._model,
            usage.total_tokens if usage else 0,
        )
        return response.choices[0].message.content or ""

    async def _structured(self, operation: str, record_cls: type[R], prompt: str, max_tokens: int) -> R:
        if self._client is None:
            LLM_REQUESTS.labels(operation=operation, status="unconfigured").inc()
            return record_cls.fallback()

        try:
            raw = await self._complete(operation, _SYSTEM_PROMPT, prompt, max_tokens)
        except Exception as e:
            LLM_REQUESTS.labels(operation=operation, status="error").inc()
            logger.warning("LLM %s failed: %s", operation, e)
            return record_cls.fallback()

        try:
            record = record_cls.model_validate_json(strip_code_fence(raw))
        except ValidationError as e:
            LLM_REQUESTS.labels(operation=operation, status="invalid").inc()
            logger.warning(
                "LLM %s returned an unusable payload (%d errors): %.200s",
                operation,
                e.error_count(),
                raw,
            )
            return record_cls.fallback()

        LLM_REQUESTS.labels(operation=operation, status="ok").inc()
        # ``available`` is ours to set, never the model's
        return record.model_copy(update={"available": True})
