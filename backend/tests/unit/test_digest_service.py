"""Subscriber digests wired end to end over in-memory stores."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from marketdaily.schemas.report import StockHolding
from marketdaily.services.container import build_services
from marketdaily.services.narrative_analyzer import NarrativeAnalyzer


class RecordingTransport:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent: list[tuple[str, str]] = []

    def send(self, to_address, subject, html_body, text_body=""):
        if to_address in self.failing:
            raise ConnectionError("recipient refused")
        self.sent.append((to_address, subject))


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def services(session_factory, settings, transport):
    settings.admin_email = "ops@example.com"
    return build_services(
        session_factory,
        settings=settings,
        analyzer=NarrativeAnalyzer(client=None),
        transport=transport,
    )


async def _tech_portfolio(services):
    portfolio = await services.portfolio_store.create(
        "Tech", [StockHolding(symbol="AAPL", name="Apple Inc.", sector="Technology")],
    )
    await services.news_store.add(
        title="Apple launches new product line", url="https://n/apple", category="stock",
        symbols=["AAPL"], sentiment=0.4,
        created_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    return portfolio


class TestSendReport:
    @pytest.mark.asyncio
    async def test_no_recipients_leaves_report_generated(self, services, transport):
        report = await services.assembler.assemble_general_report()
        summary = await services.digest.send_report(report, [])
        assert summary.status == "generated"
        assert transport.sent == []
        assert (await services.report_store.get(report.report_id)).status == "generated"

    @pytest.mark.asyncio
    async def test_partial_failure_marks_sent(self, services, transport):
        transport.failing = {"b@example.com"}
        report = await services.assembler.assemble_general_report()

        summary = await services.digest.send_report(report, ["a@example.com", "b@example.com"])

        assert (summary.total, summary.sent, summary.failed) == (2, 1, 1)
        assert summary.status == "sent"
        assert (await services.report_store.get(report.report_id)).status == "sent"
        logs = await services.report_store.email_logs(report.report_id)
        assert len(logs) == 2

    @pytest.mark.asyncio
    async def test_all_failed_marks_failed(self, services, transport):
        transport.failing = {"a@example.com"}
        report = await services.assembler.assemble_general_report()
        summary = await services.digest.send_report(report, ["a@example.com"])
        assert summary.status == "failed"
        assert summary.as_dict()["results"] == [
            {"email": "a@example.com", "status": "failed", "error": "recipient refused"},
        ]
        assert (await services.report_store.get(report.report_id)).status == "failed"


class TestDailyDigest:
    @pytest.mark.asyncio
    async def test_portfolio_and_general_groups(self, services, transport):
        portfolio = await _tech_portfolio(services)
        await services.subscription_store.subscribe("holder@example.com", portfolio.id)
        await services.subscription_store.subscribe("reader@example.com")

        results = await services.digest.send_daily_digest(use_enhanced=False)

        assert results["total"] == 2
        assert results["portfolio_subscriptions"] == 1
        assert results["general_subscriptions"] == 1
        assert [r["status"] for r in results["reports"]] == ["sent", "sent"]
        assert [r["report_type"] for r in results["reports"]] == ["portfolio", "general"]
        subjects = dict(transport.sent)
        assert subjects["holder@example.com"].startswith("Tech Portfolio Daily - ")
        assert subjects["reader@example.com"].startswith("Market Daily Report - ")

    @pytest.mark.asyncio
    async def test_enhanced_flag_from_settings(self, services, transport):
        portfolio = await _tech_portfolio(services)
        await services.subscription_store.subscribe("holder@example.com", portfolio.id)
        services.settings.use_enhanced_daily_report = True

        results = await services.digest.send_daily_digest()

        # Without providers the report keeps the enhanced shape with no external news
        assert results["reports"][0]["report_type"] == "enhanced-portfolio"
        assert transport.sent[0][1].startswith("Tech Enhanced Portfolio Report - ")

    @pytest.mark.asyncio
    async def test_generation_failure_notifies_admin_and_continues(self, services, transport):
        missing = uuid.uuid4()
        await services.subscription_store.subscribe("holder@example.com", missing)
        await services.subscription_store.subscribe("reader@example.com")

        results = await services.digest.send_daily_digest(use_enhanced=False)

        statuses = {r["portfolio_id"]: r["status"] for r in results["reports"]}
        assert statuses[str(missing)] == "error"
        assert statuses[None] == "sent"
        recipients = [to for to, _ in transport.sent]
        assert "ops@example.com" in recipients
        assert "reader@example.com" in recipients
        assert "holder@example.com" not in recipients

    @pytest.mark.asyncio
    async def test_no_subscriptions(self, services, transport):
        results = await services.digest.send_daily_digest()
        assert results == {"total": 0, "portfolio_subscriptions": 0, "general_subscriptions": 0, "reports": []}
        assert transport.sent == []


class TestSubscriberReports:
    @pytest.mark.asyncio
    async def test_enhanced_without_subscribers_is_skipped(self, services, transport):
        portfolio = await _tech_portfolio(services)
        summary = await services.digest.send_enhanced_report_to_subscribers(portfolio.id)
        assert summary.status == "skipped"
        assert (await services.report_store.list_reports()).total == 0

    @pytest.mark.asyncio
    async def test_enhanced_to_subscribers(self, services, transport):
        portfolio = await _tech_portfolio(services)
        await services.subscription_store.subscribe("holder@example.com", portfolio.id)
        summary = await services.digest.send_enhanced_report_to_subscribers(portfolio.id)
        assert summary.status == "sent"
        assert summary.report_type == "enhanced-portfolio"

    @pytest.mark.asyncio
    async def test_topic_to_general_subscribers(self, services, transport):
        await services.subscription_store.subscribe("reader@example.com")
        summary = await services.digest.send_topic_report_to_subscribers("blockchain", days=7)
        assert summary.status == "sent"
        assert [to for to, _ in transport.sent] == ["reader@example.com"]
        assert transport.sent[0][1].startswith("blockchain Topic Research Report - ")
