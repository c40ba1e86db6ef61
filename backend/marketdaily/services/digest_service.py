"""Subscriber digests: assemble, render, dispatch and record delivery status.

A generation failure for one subscription group triggers a best-effort admin
notification and the batch continues with the next group.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from marketdaily.config import Settings
from marketdaily.schemas.report import BaseReport
from marketdaily.services.email_dispatcher import DispatchOutcome, EmailDispatcher, final_status, summarize
from marketdaily.services.email_renderer import render_email
from marketdaily.services.report_assembler import ReportAssembler
from marketdaily.services.report_store import ReportStore
from marketdaily.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class DeliverySummary:
    report_id: uuid.UUID | None
    report_type: str | None
    status: str
    total: int = 0
    sent: int = 0
    failed: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "report_id": str(self.report_id) if self.report_id else None,
            "report_type": self.report_type,
            "status": self.status,
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "results": [o.as_dict() for o in self.outcomes],
            "error": self.error,
        }


class DigestService:
    def __init__(
        self,
        assembler: ReportAssembler,
        dispatcher: EmailDispatcher,
        report_store: ReportStore,
        subscription_store: SubscriptionStore,
        settings: Settings,
    ):
        self._assembler = assembler
        self._dispatcher = dispatcher
        self._reports = report_store
        self._subscriptions = subscription_store
        self._settings = settings

    async def send_report(self, report: BaseReport, recipients: Sequence[str]) -> DeliverySummary:
        """Render and send a persisted report, then update its status."""
        if not recipients:
            return DeliverySummary(report_id=report.report_id, report_type=report.type, status="generated")

        message = render_email(report)
        outcomes = await self._dispatcher.dispatch(message, recipients, report_id=report.report_id)
        status = final_status(outcomes)
        if report.report_id is not None:
            await self._reports.update_status(report.report_id, status)

        sent, failed = summarize(outcomes)
        return DeliverySummary(
            report_id=report.report_id,
            report_type=report.type,
            status=status,
            total=len(outcomes),
            sent=sent,
            failed=failed,
            outcomes=outcomes,
        )

    async def send_daily_digest(self, use_enhanced: bool | None = None) -> dict:
        """Send every active subscription its portfolio or general digest."""
        if use_enhanced is None:
            use_enhanced = self._settings.use_enhanced_daily_report

        subscriptions = await self._subscriptions.active()
        by_portfolio: dict[uuid.UUID, list[str]] = {}
        general: list[str] = []
        for sub in subscriptions:
            if sub.portfolio_id is None:
                general.append(sub.email)
            else:
                by_portfolio.setdefault(sub.portfolio_id, []).append(sub.email)

        logger.info(
            "Daily digest: %d subscriptions (%d portfolios, %d general recipients, enhanced=%s)",
            len(subscriptions), len(by_portfolio), len(general), use_enhanced,
        )

        results = {
            "total": len(subscriptions),
            "portfolio_subscriptions": sum(len(v) for v in by_portfolio.values()),
            "general_subscriptions": len(general),
            "reports": [],
        }

        for portfolio_id, emails in by_portfolio.items():
            assemble = (
                self._assembler.assemble_enhanced_portfolio_report
                if use_enhanced
                else self._assembler.assemble_portfolio_report
            )
            summary = await self._generate_and_send(f"portfolio {portfolio_id}", assemble(portfolio_id), emails)
            results["reports"].append({"portfolio_id": str(portfolio_id), **summary.as_dict()})

        if general:
            summary = await self._generate_and_send(
                "general report", self._assembler.assemble_general_report(), general,
            )
            results["reports"].append({"portfolio_id": None, **summary.as_dict()})

        return results

    async def send_enhanced_report_to_subscribers(
        self,
        portfolio_id: uuid.UUID,
        report_date: date | None = None,
        user_id: uuid.UUID | None = None,
    ) -> DeliverySummary:
        emails = await self._subscriptions.emails_for_portfolio(portfolio_id)
        if not emails:
            logger.info("Portfolio %s has no active subscribers", portfolio_id)
            return DeliverySummary(report_id=None, report_type=None, status="skipped")
        report = await self._assembler.assemble_enhanced_portfolio_report(portfolio_id, report_date, user_id)
        return await self.send_report(report, emails)

    async def send_topic_report_to_subscribers(
        self,
        topic: str,
        days: int = 14,
        user_id: uuid.UUID | None = None,
    ) -> DeliverySummary:
        emails = await self._subscriptions.general_emails()
        if not emails:
            logger.info("No general subscribers for topic report %r", topic)
            return DeliverySummary(report_id=None, report_type=None, status="skipped")
        report = await self._assembler.assemble_topic_report(topic, days, user_id)
        return await self.send_report(report, emails)

    async def _generate_and_send(self, context: str, assembling, emails: list[str]) -> DeliverySummary:
        try:
            report = await assembling
        except Exception as e:
            logger.error("Report generation failed for %s: %s", context, e, exc_info=True)
            await self._dispatcher.notify_admin_error(context, e)
            return DeliverySummary(report_id=None, report_type=None, status="error", error=str(e))
        return await self.send_report(report, emails)
