import uuid

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketdaily.models.base import Base, UUIDMixin, TimestampMixin


class Portfolio(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "portfolios"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    stocks: Mapped[list["PortfolioStock"]] = relationship(
        back_populates="portfolio",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PortfolioStock.created_at",
    )


class PortfolioStock(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "portfolio_stocks"
    __table_args__ = (UniqueConstraint("portfolio_id", "symbol", name="uq_portfolio_stock_symbol"),)

    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sector: Mapped[str | None] = mapped_column(String(100))

    portfolio: Mapped[Portfolio] = relationship(back_populates="stocks")
