"""Repository for PaymentPosting rows."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paysync.db.models.payment_posting import PaymentPosting
from paysync.db.types import utcnow

logger = logging.getLogger(__name__)


class PaymentPostingRepository:
    """Data access for payments reported back to Cin7."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_by_id(self, posting_id: int) -> PaymentPosting | None:
        result = await self.db.execute(select(PaymentPosting).where(PaymentPosting.id == posting_id))
        return result.scalar_one_or_none()

    async def get_by_sale_and_intent(
        self, cin7_sale_id: str, stripe_payment_intent_id: str
    ) -> PaymentPosting | None:
        result = await self.db.execute(
            select(PaymentPosting).where(
                PaymentPosting.cin7_sale_id == cin7_sale_id,
                PaymentPosting.stripe_payment_intent_id == stripe_payment_intent_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_unposted(
        self,
        cin7_sale_id: str,
        stripe_payment_intent_id: str,
        stripe_charge_id: str | None,
        amount: int,
        currency: str,
    ) -> tuple[PaymentPosting, bool]:
        """Reserve the (sale, intent) pair with an unposted row.

        A concurrent attempt that already inserted the pair wins; its row is
        returned instead.

        Returns:
            Tuple of (posting, created)
        """
        posting = PaymentPosting(
            cin7_sale_id=cin7_sale_id,
            stripe_payment_intent_id=stripe_payment_intent_id,
            stripe_charge_id=stripe_charge_id,
            amount=amount,
            currency=currency.upper(),
            posted_to_cin7=False,
        )
        try:
            self.db.add(posting)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_by_sale_and_intent(cin7_sale_id, stripe_payment_intent_id)
            if existing is None:
                raise
            logger.info(
                "Payment posting already reserved: cin7_sale_id=%s intent=%s",
                cin7_sale_id,
                stripe_payment_intent_id,
            )
            return existing, False
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(
                "Failed to create payment posting: cin7_sale_id=%s intent=%s",
                cin7_sale_id,
                stripe_payment_intent_id,
            )
            raise

        await self.db.refresh(posting)
        logger.info(
            "Created payment posting record: cin7_sale_id=%s intent=%s",
            cin7_sale_id,
            stripe_payment_intent_id,
        )
        return posting, True

    async def claim(self, posting_id: int, force: bool = False) -> bool:
        """
        Take the right to send a posting to Cin7.

        A conditional UPDATE sets posting_started_at only on an unposted,
        unclaimed row, so exactly one concurrent caller sees rowcount 1.
        With force the row is claimed whatever its state.

        Returns:
            True if this caller holds the claim
        """
        conditions = [PaymentPosting.id == posting_id]
        if not force:
            conditions.append(PaymentPosting.posted_to_cin7.is_(False))
            conditions.append(PaymentPosting.posting_started_at.is_(None))

        try:
            result = await self.db.execute(
                update(PaymentPosting)
                .where(*conditions)
                .values(posting_started_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to claim payment posting: id=%s", posting_id)
            raise

        claimed = result.rowcount == 1
        if not claimed:
            logger.info("Payment posting already claimed or posted: id=%s", posting_id)
        return claimed

    async def release_claim(self, posting_id: int) -> None:
        try:
            await self.db.execute(
                update(PaymentPosting)
                .where(PaymentPosting.id == posting_id, PaymentPosting.posted_to_cin7.is_(False))
                .values(posting_started_at=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to release payment posting claim: id=%s", posting_id)
            raise

    async def mark_posted(self, posting: PaymentPosting, cin7_response: Any) -> None:
        posting.posted_to_cin7 = True
        posting.cin7_response = cin7_response
        posting.posted_at = utcnow()
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to mark payment posting as posted: id=%s", posting.id)
            raise

        logger.info(
            "Marked payment as posted to Cin7: cin7_sale_id=%s intent=%s",
            posting.cin7_sale_id,
            posting.stripe_payment_intent_id,
        )

    async def list_unposted(self, limit: int, offset: int) -> tuple[list[PaymentPosting], int]:
        """Page through unposted rows, oldest first.

        Returns:
            Tuple of (page, total unposted)
        """
        total_result = await self.db.execute(
            select(func.count(PaymentPosting.id)).where(PaymentPosting.posted_to_cin7.is_(False))
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(PaymentPosting)
            .where(PaymentPosting.posted_to_cin7.is_(False))
            .order_by(PaymentPosting.created_at.asc(), PaymentPosting.id.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def count_posted(self, start: datetime | None = None, end: datetime | None = None) -> int:
        query = select(func.count(PaymentPosting.id)).where(PaymentPosting.posted_to_cin7.is_(True))
        if start is not None:
            query = query.where(PaymentPosting.posted_at >= start)
        if end is not None:
            query = query.where(PaymentPosting.posted_at <= end)
        result = await self.db.execute(query)
        return result.scalar_one()

    async def count_unposted(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> int:
        query = select(func.count(PaymentPosting.id)).where(PaymentPosting.posted_to_cin7.is_(False))
        if start is not None:
            query = query.where(PaymentPosting.created_at >= start)
        if end is not None:
            query = query.where(PaymentPosting.created_at <= end)
        result = await self.db.execute(query)
        return result.scalar_one()
