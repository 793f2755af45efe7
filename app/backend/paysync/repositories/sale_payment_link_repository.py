"""Repository for SalePaymentLink rows."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paysync.db.models.sale_payment_link import PaymentLinkStatus, SalePaymentLink

logger = logging.getLogger(__name__)


class PaymentLinkAlreadyExistsError(Exception):
    """Raised when a link row already exists for the sale."""

    pass


class SalePaymentLinkRepository:
    """Data access for payment links generated per Cin7 sale."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create(
        self,
        cin7_sale_id: str,
        cin7_reference: str,
        stripe_payment_link_id: str,
        stripe_payment_link_url: str,
        amount: int,
        currency: str,
        status: PaymentLinkStatus = PaymentLinkStatus.PENDING,
    ) -> SalePaymentLink:
        """Persist a new payment link.

        Raises:
            PaymentLinkAlreadyExistsError: If the sale already has a link
        """
        link = SalePaymentLink(
            cin7_sale_id=cin7_sale_id,
            cin7_reference=cin7_reference,
            stripe_payment_link_id=stripe_payment_link_id,
            stripe_payment_link_url=stripe_payment_link_url,
            amount=amount,
            currency=currency.upper(),
            status=status.value,
        )
        try:
            self.db.add(link)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise PaymentLinkAlreadyExistsError(
                f"Payment link already exists for sale {cin7_sale_id}"
            ) from e
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to create sale payment link: cin7_sale_id=%s", cin7_sale_id)
            raise

        await self.db.refresh(link)
        logger.info(
            "Created sale payment link: cin7_sale_id=%s stripe_payment_link_id=%s",
            cin7_sale_id,
            stripe_payment_link_id,
        )
        return link

    async def get_by_id(self, link_id: int) -> SalePaymentLink | None:
        result = await self.db.execute(select(SalePaymentLink).where(SalePaymentLink.id == link_id))
        return result.scalar_one_or_none()

    async def get_by_sale_id(self, cin7_sale_id: str) -> SalePaymentLink | None:
        result = await self.db.execute(
            select(SalePaymentLink).where(SalePaymentLink.cin7_sale_id == cin7_sale_id)
        )
        return result.scalar_one_or_none()

    async def update_status(self, link: SalePaymentLink, status: PaymentLinkStatus) -> str:
        """Set the link status and return the previous one."""
        old_status = link.status
        link.status = status.value
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(
                "Failed to update sale payment link status: cin7_sale_id=%s status=%s",
                link.cin7_sale_id,
                status.value,
            )
            raise

        logger.info(
            "Updated sale payment link status: cin7_sale_id=%s %s -> %s",
            link.cin7_sale_id,
            old_status,
            status.value,
        )
        return old_status

