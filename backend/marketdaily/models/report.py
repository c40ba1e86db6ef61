"""Persisted report snapshots and their delivery log."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from marketdaily.models.base import Base, UUIDMixin, TimestampMixin, utcnow


class Report(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "reports"

    # portfolio | enhanced-portfolio | topic-research | general
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    portfolio_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), index=True
    )
    # NULL = generated by the scheduler
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    topic: Mapped[str | None] = mapped_column(String(100))
    days: Mapped[int | None] = mapped_column(Integer)
    # generated -> sent | failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="generated")


class EmailLog(Base, UUIDMixin):
    __tablename__ = "email_logs"

    report_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("reports.id", ondelete="SET NULL"), index=True
    )
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    # pending | sent | failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    error_message: Mapped[str | None] = mapped_column(Text)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
