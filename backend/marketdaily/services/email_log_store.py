import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdaily.models.report import EmailLog


class EmailLogStore:
    """Append-only log of delivery attempts, one row per recipient per batch."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(
        self,
        recipient: str,
        subject: str,
        status: str,
        error_message: str | None = None,
        report_id: uuid.UUID | None = None,
    ) -> EmailLog:
        log = EmailLog(
            recipient=recipient,
            subject=subject,
            status=status,
            error_message=error_message,
            report_id=report_id,
        )
        async with self._session_factory() as db:
            db.add(log)
            await db.commit()
        return log
