"""Report snapshot persistence and delivery-log lookups."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdaily.models.report import EmailLog, Report

REPORT_STATUSES = ("generated", "sent", "failed")


@dataclass
class ReportPage:
    reports: list[Report]
    total: int
    sent_ids: set[uuid.UUID]


class ReportStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(
        self,
        type: str,
        title: str,
        payload: dict,
        portfolio_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
        topic: str | None = None,
        days: int | None = None,
        status: str = "generated",
    ) -> uuid.UUID:
        report = Report(
            type=type,
            title=title,
            portfolio_id=portfolio_id,
            user_id=user_id,
            payload=payload,
            topic=topic,
            days=days,
            status=status,
        )
        async with self._session_factory() as db:
            db.add(report)
            await db.commit()
            return report.id

    async def update_status(self, report_id: uuid.UUID, status: str) -> None:
        if status not in REPORT_STATUSES:
            raise ValueError(f"Invalid report status: {status}")
        async with self._session_factory() as db:
            await db.execute(update(Report).where(Report.id == report_id).values(status=status))
            await db.commit()

    async def get(self, report_id: uuid.UUID) -> Report | None:
        async with self._session_factory() as db:
            return await db.get(Report, report_id)

    async def list_reports(
        self,
        user_id: uuid.UUID | None = None,
        portfolio_id: uuid.UUID | None = None,
        type: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> ReportPage:
        """Reports newest first, with the ids of those delivered at least once."""
        conditions = []
        if user_id is not None:
            conditions.append(Report.user_id == user_id)
        if portfolio_id is not None:
            conditions.append(Report.portfolio_id == portfolio_id)
        if type is not None:
            conditions.append(Report.type == type)
        if date_from is not None:
            conditions.append(Report.created_at >= date_from)
        if date_to is not None:
            conditions.append(Report.created_at < date_to)

        async with self._session_factory() as db:
            result = await db.execute(
                select(Report).where(*conditions)
                .order_by(Report.created_at.desc())
                .offset(offset).limit(limit)
            )
            reports = list(result.scalars().all())

            total = (await db.execute(
                select(func.count()).select_from(Report).where(*conditions)
            )).scalar() or 0

            sent_ids: set[uuid.UUID] = set()
            if reports:
                sent = await db.execute(
                    select(EmailLog.report_id).distinct().where(
                        EmailLog.report_id.in_([r.id for r in reports]),
                        EmailLog.status == "sent",
                    )
                )
                sent_ids = set(sent.scalars().all())

        return ReportPage(reports=reports, total=total, sent_ids=sent_ids)

    async def email_logs(self, report_id: uuid.UUID) -> list[EmailLog]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EmailLog).where(EmailLog.report_id == report_id).order_by(EmailLog.sent_at)
            )
            return list(result.scalars().all())
