"""Per-recipient dispatch, delivery logging and admin notifications."""

import threading
import time
from unittest.mock import AsyncMock

import pytest

from marketdaily.services.email_dispatcher import (
    DispatchOutcome,
    EmailDispatcher,
    final_status,
    summarize,
)
from marketdaily.services.email_renderer import RenderedEmail

MESSAGE = RenderedEmail(subject="Tech Portfolio Daily - Friday, March 15, 2024", html="<p>x</p>", text="x")


class RecordingTransport:
    """Collects sends; raises for addresses in ``failing``."""

    def __init__(self, failing=(), delay: float = 0.0):
        self.failing = set(failing)
        self.delay = delay
        self.sent: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def send(self, to_address, subject, html_body, text_body=""):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if to_address in self.failing:
                raise ConnectionError(f"mailbox unavailable: {to_address}")
            with self._lock:
                self.sent.append((to_address, subject))
        finally:
            with self._lock:
                self.active -= 1


def _recipients(n):
    return [f"user{i}@example.com" for i in range(n)]


class TestDispatch:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("total,failing_index", [(1, 0), (3, 1), (5, 4)])
    async def test_one_failure_does_not_abort_batch(
        self, report_store, email_log_store, total, failing_index,
    ):
        recipients = _recipients(total)
        transport = RecordingTransport(failing={recipients[failing_index]})
        dispatcher = EmailDispatcher(transport, email_log_store)
        report_id = await report_store.save(type="general", title="G", payload={})

        outcomes = await dispatcher.dispatch(MESSAGE, recipients, report_id=report_id)

        assert [o.email for o in outcomes] == recipients
        assert [o.status for o in outcomes].count("failed") == 1
        assert outcomes[failing_index].status == "failed"
        assert "mailbox unavailable" in outcomes[failing_index].error
        assert len(transport.sent) == total - 1

        logs = await report_store.email_logs(report_id)
        assert len(logs) == total
        assert sorted(log.recipient for log in logs) == sorted(recipients)
        assert [log.status for log in logs].count("failed") == 1
        assert all(log.subject == MESSAGE.subject for log in logs)

    @pytest.mark.asyncio
    async def test_sequential_by_default(self, email_log_store):
        transport = RecordingTransport(delay=0.01)
        await EmailDispatcher(transport, email_log_store).dispatch(MESSAGE, _recipients(4))
        assert transport.max_active == 1
        assert [to for to, _ in transport.sent] == _recipients(4)

    @pytest.mark.asyncio
    async def test_bounded_concurrency_keeps_order(self):
        log_store = AsyncMock()
        transport = RecordingTransport(delay=0.05, failing={"user2@example.com"})
        dispatcher = EmailDispatcher(transport, log_store, max_concurrency=2)
        outcomes = await dispatcher.dispatch(MESSAGE, _recipients(6))

        assert transport.max_active <= 2
        assert [o.email for o in outcomes] == _recipients(6)
        assert outcomes[2].status == "failed"
        assert log_store.append.await_count == 6

    @pytest.mark.asyncio
    async def test_empty_recipients(self, email_log_store):
        transport = RecordingTransport()
        assert await EmailDispatcher(transport, email_log_store).dispatch(MESSAGE, []) == []


class TestSummaries:
    def test_summarize(self):
        outcomes = [
            DispatchOutcome("a@example.com", "sent"),
            DispatchOutcome("b@example.com", "failed", "refused"),
            DispatchOutcome("c@example.com", "sent"),
        ]
        assert summarize(outcomes) == (2, 1)
        assert final_status(outcomes) == "sent"

    def test_all_failed(self):
        outcomes = [DispatchOutcome("a@example.com", "failed", "refused")]
        assert final_status(outcomes) == "failed"

    def test_as_dict(self):
        assert DispatchOutcome("a@example.com", "failed", "refused").as_dict() == {
            "email": "a@example.com", "status": "failed", "error": "refused",
        }


class TestAdminNotification:
    @pytest.mark.asyncio
    async def test_disabled_without_admin_address(self, email_log_store):
        transport = RecordingTransport()
        dispatcher = EmailDispatcher(transport, email_log_store)
        assert await dispatcher.notify_admin_error("portfolio Tech", ValueError("boom")) is False
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_sends_to_admin(self, email_log_store):
        transport = RecordingTransport()
        dispatcher = EmailDispatcher(transport, email_log_store, admin_email="ops@example.com")
        assert await dispatcher.notify_admin_error("portfolio Tech", ValueError("boom")) is True
        assert transport.sent == [("ops@example.com", "[Market Daily] Report generation failed: portfolio Tech")]

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self, email_log_store):
        transport = RecordingTransport(failing={"ops@example.com"})
        dispatcher = EmailDispatcher(transport, email_log_store, admin_email="ops@example.com")
        assert await dispatcher.notify_admin_error("general report", RuntimeError("db down")) is False
