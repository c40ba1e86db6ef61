import uuid

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from marketdaily.models.base import Base, UUIDMixin, TimestampMixin


class EmailSubscription(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "email_subscriptions"
    # One row per (email, portfolio_id). NULLs never collide in a unique
    # constraint, so the general digest gets its own partial index.
    __table_args__ = (
        UniqueConstraint("email", "portfolio_id", name="uq_subscription_email_portfolio"),
        Index(
            "uq_subscription_email_general",
            "email",
            unique=True,
            sqlite_where=text("portfolio_id IS NULL"),
            postgresql_where=text("portfolio_id IS NULL"),
        ),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # NULL = general market digest
    portfolio_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
