import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdaily.models.subscription import EmailSubscription

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """Digest subscriptions. ``portfolio_id=None`` is the general digest.

    At most one row exists per (email, portfolio_id); unsubscribing
    deactivates it and subscribing again reactivates it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def active(self) -> list[EmailSubscription]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EmailSubscription)
                .where(EmailSubscription.is_active.is_(True))
                .order_by(EmailSubscription.created_at)
            )
            return list(result.scalars().all())

    async def emails_for_portfolio(self, portfolio_id: uuid.UUID) -> list[str]:
        return await self._emails(EmailSubscription.portfolio_id == portfolio_id)

    async def general_emails(self) -> list[str]:
        return await self._emails(EmailSubscription.portfolio_id.is_(None))

    async def subscribe(self, email: str, portfolio_id: uuid.UUID | None = None) -> EmailSubscription:
        email = email.strip().lower()
        try:
            return await self._activate(email, portfolio_id)
        except IntegrityError:
            # A concurrent subscribe inserted the row first; reactivate it
            logger.info("Subscription for %s created concurrently, retrying", email)
            return await self._activate(email, portfolio_id)

    async def _activate(self, email: str, portfolio_id: uuid.UUID | None) -> EmailSubscription:
        async with self._session_factory() as db:
            result = await db.execute(select(EmailSubscription).where(self._key(email, portfolio_id)))
            subscription = result.scalars().first()
            if subscription is None:
                subscription = EmailSubscription(email=email, portfolio_id=portfolio_id, is_active=True)
                db.add(subscription)
            elif not subscription.is_active:
                logger.info("Reactivating subscription for %s", email)
                subscription.is_active = True
            await db.commit()
            return subscription

    async def unsubscribe(self, email: str, portfolio_id: uuid.UUID | None = None) -> bool:
        email = email.strip().lower()
        async with self._session_factory() as db:
            result = await db.execute(
                select(EmailSubscription).where(
                    self._key(email, portfolio_id),
                    EmailSubscription.is_active.is_(True),
                )
            )
            subscription = result.scalars().first()
            if subscription is None:
                return False
            subscription.is_active = False
            await db.commit()
            return True

    async def _emails(self, condition) -> list[str]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EmailSubscription.email)
                .where(condition, EmailSubscription.is_active.is_(True))
                .order_by(EmailSubscription.created_at)
            )
            return list(result.scalars().all())

    @staticmethod
    def _key(email: str, portfolio_id: uuid.UUID | None):
        portfolio_match = (
            EmailSubscription.portfolio_id.is_(None)
            if portfolio_id is None
            else EmailSubscription.portfolio_id == portfolio_id
        )
        return (EmailSubscription.email == email) & portfolio_match
