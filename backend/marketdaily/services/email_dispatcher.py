"""Per-recipient email delivery with a log row for every attempt.

One recipient's failure never aborts the batch. Sends run sequentially by
default; with ``max_concurrency > 1`` they run under a semaphore, and
outcomes are still returned in recipient order.
"""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Protocol, Sequence

from marketdaily.core.metrics import EMAILS_SENT
from marketdaily.services.email_log_store import EmailLogStore
from marketdaily.services.email_renderer import RenderedEmail, render_admin_error

logger = logging.getLogger(__name__)


class EmailTransport(Protocol):
    def send(self, to_address: str, subject: str, html_body: str, text_body: str = "") -> None:
        ...


@dataclass
class DispatchOutcome:
    email: str
    status: str  # sent | failed
    error: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


def summarize(outcomes: Sequence[DispatchOutcome]) -> tuple[int, int]:
    """(sent, failed) counts."""
    sent = sum(1 for o in outcomes if o.status == "sent")
    return sent, len(outcomes) - sent


def final_status(outcomes: Sequence[DispatchOutcome]) -> str:
    """Report status after a batch: sent if any delivery succeeded."""
    return "sent" if any(o.status == "sent" for o in outcomes) else "failed"


class EmailDispatcher:
    def __init__(
        self,
        transport: EmailTransport,
        log_store: EmailLogStore,
        max_concurrency: int = 1,
        admin_email: str = "",
    ):
        self._transport = transport
        self._logs = log_store
        self._max_concurrency = max(1, max_concurrency)
        self._admin_email = admin_email

    async def dispatch(
        self,
        message: RenderedEmail,
        recipients: Sequence[str],
        report_id: uuid.UUID | None = None,
    ) -> list[DispatchOutcome]:
        if self._max_concurrency == 1:
            outcomes = [await self._deliver(message, r, report_id) for r in recipients]
        else:
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def bounded(recipient: str) -> DispatchOutcome:
                async with semaphore:
                    return await self._deliver(message, recipient, report_id)

            outcomes = list(await asyncio.gather(*(bounded(r) for r in recipients)))

        sent, failed = summarize(outcomes)
        logger.info("Dispatched %r: %d sent, %d failed", message.subject, sent, failed)
        return outcomes

    async def notify_admin_error(self, context: str, error: BaseException | str) -> bool:
        """Best-effort alert to the admin address. Never raises."""
        if not self._admin_email:
            logger.debug("ADMIN_EMAIL not set, skipping error notification for %s", context)
            return False
        message = render_admin_error(context, str(error), datetime.now(timezone.utc))
        try:
            await asyncio.to_thread(
                self._transport.send, self._admin_email, message.subject, message.html, message.text,
            )
        except Exception as e:
            logger.error("Failed to notify admin about %s: %s", context, e)
            return False
        return True

    async def _deliver(self, message: RenderedEmail, recipient: str, report_id: uuid.UUID | None) -> DispatchOutcome:
        try:
            await asyncio.to_thread(
                self._transport.send, recipient, message.subject, message.html, message.text,
            )
        except Exception as e:
            logger.warning("Failed to send %r to %s: %s", message.subject, recipient, e)
            outcome = DispatchOutcome(email=recipient, status="failed", error=str(e) or type(e).__name__)
        else:
            outcome = DispatchOutcome(email=recipient, status="sent")

        EMAILS_SENT.labels(status=outcome.status).inc()
        await self._logs.append(
            recipient=recipient,
            subject=message.subject,
            status=outcome.status,
            error_message=outcome.error,
            report_id=report_id,
        )
        return outcome
