"""Portfolio, report, email-log and subscription stores."""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from marketdaily.models.subscription import EmailSubscription
from marketdaily.schemas.report import StockHolding


class TestPortfolioStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, portfolio_store):
        created = await portfolio_store.create(
            "Tech", [StockHolding(symbol="aapl", name="Apple Inc.", sector="Technology")],
        )
        loaded = await portfolio_store.get(created.id)
        assert loaded.name == "Tech"
        assert [s.symbol for s in loaded.stocks] == ["AAPL"]
        assert loaded.stocks[0].sector == "Technology"

    @pytest.mark.asyncio
    async def test_get_missing(self, portfolio_store):
        assert await portfolio_store.get(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_list_public(self, portfolio_store):
        await portfolio_store.create("Private", [StockHolding(symbol="X", name="X")])
        await portfolio_store.create("Empty public", is_public=True)
        await portfolio_store.create(
            "Dividend",
            [StockHolding(symbol="KO", name="Coca-Cola"), StockHolding(symbol="PG", name="P&G")],
            is_public=True,
        )
        public = await portfolio_store.list_public()
        assert [(p.name, p.stock_count) for p in public] == [("Dividend", 2), ("Empty public", 0)]

    @pytest.mark.asyncio
    async def test_list_public_limit(self, portfolio_store):
        for i in range(7):
            await portfolio_store.create(f"P{i}", is_public=True)
        assert len(await portfolio_store.list_public(limit=5)) == 5

    @pytest.mark.asyncio
    async def test_all_holdings_distinct_by_symbol(self, portfolio_store):
        await portfolio_store.create(
            "A", [StockHolding(symbol="msft", name="Microsoft"), StockHolding(symbol="AAPL", name="Apple Inc.")],
        )
        await portfolio_store.create("B", [StockHolding(symbol="AAPL", name="Apple")])
        await portfolio_store.create("Empty")

        holdings = await portfolio_store.all_holdings()

        assert [h.symbol for h in holdings] == ["AAPL", "MSFT"]
        assert holdings[0].name == "Apple Inc."


class TestReportStore:
    @pytest.mark.asyncio
    async def test_save_and_get(self, report_store):
        report_id = await report_store.save(
            type="topic-research", title="Topic Research Report - AI",
            payload={"topic": "AI"}, topic="AI", days=14,
        )
        report = await report_store.get(report_id)
        assert report.type == "topic-research"
        assert report.payload == {"topic": "AI"}
        assert report.status == "generated"
        assert report.days == 14

    @pytest.mark.asyncio
    async def test_update_status(self, report_store):
        report_id = await report_store.save(type="general", title="General", payload={})
        await report_store.update_status(report_id, "sent")
        assert (await report_store.get(report_id)).status == "sent"

    @pytest.mark.asyncio
    async def test_update_status_rejects_unknown(self, report_store):
        report_id = await report_store.save(type="general", title="General", payload={})
        with pytest.raises(ValueError):
            await report_store.update_status(report_id, "archived")

    @pytest.mark.asyncio
    async def test_list_filters_and_sent_flag(self, report_store, email_log_store):
        portfolio_id = uuid.uuid4()
        first = await report_store.save(type="portfolio", title="A", payload={}, portfolio_id=portfolio_id)
        second = await report_store.save(type="portfolio", title="B", payload={}, portfolio_id=portfolio_id)
        await report_store.save(type="general", title="G", payload={})

        await email_log_store.append("a@example.com", "subj", "sent", report_id=first)
        await email_log_store.append("b@example.com", "subj", "failed", "refused", report_id=second)

        page = await report_store.list_reports(portfolio_id=portfolio_id)
        assert page.total == 2
        assert [r.title for r in page.reports] == ["B", "A"]
        assert page.sent_ids == {first}

        page = await report_store.list_reports(type="general")
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_list_pagination(self, report_store):
        for i in range(5):
            await report_store.save(type="general", title=f"R{i}", payload={})
        page = await report_store.list_reports(limit=2, offset=2)
        assert page.total == 5
        assert [r.title for r in page.reports] == ["R2", "R1"]

    @pytest.mark.asyncio
    async def test_email_logs_by_report(self, report_store, email_log_store):
        report_id = await report_store.save(type="general", title="G", payload={})
        await email_log_store.append("a@example.com", "subj", "sent", report_id=report_id)
        await email_log_store.append("b@example.com", "subj", "failed", "timeout", report_id=report_id)
        await email_log_store.append("c@example.com", "other", "sent")

        logs = await report_store.email_logs(report_id)
        assert [(log.recipient, log.status) for log in logs] == [
            ("a@example.com", "sent"), ("b@example.com", "failed"),
        ]
        assert logs[1].error_message == "timeout"


class TestSubscriptionStore:
    @pytest.mark.asyncio
    async def test_general_and_portfolio_lists(self, subscription_store):
        portfolio_id = uuid.uuid4()
        await subscription_store.subscribe("General@Example.com")
        await subscription_store.subscribe("holder@example.com", portfolio_id)

        assert await subscription_store.general_emails() == ["general@example.com"]
        assert await subscription_store.emails_for_portfolio(portfolio_id) == ["holder@example.com"]
        assert len(await subscription_store.active()) == 2

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent(self, subscription_store):
        first = await subscription_store.subscribe("a@example.com")
        second = await subscription_store.subscribe("a@example.com")
        assert first.id == second.id
        assert await subscription_store.general_emails() == ["a@example.com"]

    @pytest.mark.asyncio
    async def test_unsubscribe_and_reactivate(self, subscription_store):
        await subscription_store.subscribe("a@example.com")
        assert await subscription_store.unsubscribe("A@example.com") is True
        assert await subscription_store.general_emails() == []
        assert await subscription_store.unsubscribe("a@example.com") is False

        await subscription_store.subscribe("a@example.com")
        assert await subscription_store.general_emails() == ["a@example.com"]

    @pytest.mark.asyncio
    async def test_unsubscribe_scoped_to_portfolio(self, subscription_store):
        portfolio_id = uuid.uuid4()
        await subscription_store.subscribe("a@example.com")
        await subscription_store.subscribe("a@example.com", portfolio_id)

        assert await subscription_store.unsubscribe("a@example.com", portfolio_id) is True
        assert await subscription_store.general_emails() == ["a@example.com"]
        assert await subscription_store.emails_for_portfolio(portfolio_id) == []

    @pytest.mark.asyncio
    async def test_one_row_per_email_and_portfolio(self, session_factory):
        portfolio_id = uuid.uuid4()
        for target in (None, portfolio_id):
            async with session_factory() as db:
                db.add(EmailSubscription(email="dup@example.com", portfolio_id=target))
                await db.commit()
            async with session_factory() as db:
                db.add(EmailSubscription(email="dup@example.com", portfolio_id=target))
                with pytest.raises(IntegrityError):
                    await db.commit()

    @pytest.mark.asyncio
    async def test_subscribe_recovers_when_row_created_concurrently(self, subscription_store, session_factory):
        real_activate = subscription_store._activate
        competitor = {}

        async def lose_race_once(email, portfolio_id):
            if not competitor:
                # another request commits between our lookup and our insert
                async with session_factory() as db:
                    row = EmailSubscription(email=email, portfolio_id=portfolio_id, is_active=True)
                    db.add(row)
                    await db.commit()
                    competitor["id"] = row.id
                async with session_factory() as db:
                    db.add(EmailSubscription(email=email, portfolio_id=portfolio_id, is_active=True))
                    await db.commit()
            return await real_activate(email, portfolio_id)

        with patch.object(subscription_store, "_activate", side_effect=lose_race_once):
            subscription = await subscription_store.subscribe("race@example.com")

        assert subscription.id == competitor["id"]
        assert await subscription_store.general_emails() == ["race@example.com"]
