import uuid
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdaily.models.portfolio import Portfolio, PortfolioStock
from marketdaily.schemas.report import PortfolioInfo, PublicPortfolio, StockHolding


class PortfolioStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, portfolio_id: uuid.UUID) -> PortfolioInfo | None:
        """Portfolio with its holdings, or None if it does not exist."""
        async with self._session_factory() as db:
            portfolio = await db.get(Portfolio, portfolio_id)
            if portfolio is None:
                return None
            return PortfolioInfo.model_validate(portfolio)

    async def list_public(self, limit: int = 5) -> list[PublicPortfolio]:
        """Most recently created public portfolios with their holding counts."""
        stmt = (
            select(Portfolio, func.count(PortfolioStock.id).label("stock_count"))
            .outerjoin(PortfolioStock, PortfolioStock.portfolio_id == Portfolio.id)
            .where(Portfolio.is_public.is_(True))
            .group_by(Portfolio.id)
            .order_by(Portfolio.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [
                PublicPortfolio(
                    id=portfolio.id,
                    name=portfolio.name,
                    description=portfolio.description,
                    stock_count=stock_count,
                )
                for portfolio, stock_count in result.all()
            ]

    async def all_holdings(self) -> list[StockHolding]:
        """Distinct holdings across every portfolio, one per symbol."""
        stmt = select(PortfolioStock).order_by(PortfolioStock.symbol, PortfolioStock.created_at)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            holdings: dict[str, StockHolding] = {}
            for stock in result.scalars().all():
                holdings.setdefault(stock.symbol, StockHolding.model_validate(stock))
        return list(holdings.values())

    async def create(
        self,
        name: str,
        stocks: Iterable[StockHolding] = (),
        description: str | None = None,
        owner_id: uuid.UUID | None = None,
        is_public: bool = False,
    ) -> PortfolioInfo:
        portfolio = Portfolio(
            name=name,
            description=description,
            owner_id=owner_id,
            is_public=is_public,
            stocks=[
                PortfolioStock(symbol=s.symbol.upper(), name=s.name, sector=s.sector)
                for s in stocks
            ],
        )
        async with self._session_factory() as db:
            db.add(portfolio)
            await db.commit()
            return PortfolioInfo.model_validate(portfolio)
