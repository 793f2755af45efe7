"""Posts a reserved PaymentPosting row to Cin7 and records the outcome."""

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from paysync.core.exceptions import Cin7APIError
from paysync.core.metrics import MetricsCollector
from paysync.db.models.payment_posting import PaymentPosting
from paysync.db.models.sale_payment_link import PaymentLinkStatus
from paysync.repositories.payment_posting_repository import PaymentPostingRepository
from paysync.repositories.sale_payment_link_repository import SalePaymentLinkRepository
from paysync.services.cin7.cin7_service import Cin7Service

logger = logging.getLogger(__name__)


def to_major_units(amount: int) -> Decimal:
    """Convert integer minor units back to a two-decimal amount (15000 -> 150.00)."""
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class PaymentPoster:
    """Shared by the webhook pipeline and admin retries."""

    def __init__(self, cin7: Cin7Service, metrics: MetricsCollector):
        self.cin7 = cin7
        self.metrics = metrics

    async def post(
        self, db_session: AsyncSession, posting: PaymentPosting, note: str | None = None
    ) -> Any:
        """
        Send the payment to Cin7, then mark the posting posted and the sale's link paid.

        The caller must hold the posting claim. The posted flag is only set
        after Cin7 confirms. A failed call leaves the row unposted and releases
        the claim so it can be retried.

        Raises:
            Cin7APIError: If Cin7 rejects the payment or is unreachable
        """
        payment_ref = posting.stripe_payment_intent_id
        amount = to_major_units(posting.amount)
        notes = f"Stripe Payment Intent: {payment_ref}"
        if note:
            notes = f"{notes} ({note})"

        try:
            response = await self.cin7.post_payment(
                sale_id=posting.cin7_sale_id,
                amount=amount,
                currency=posting.currency,
                reference=posting.stripe_charge_id or payment_ref,
                notes=notes,
            )
        except Cin7APIError:
            self.metrics.increment("payments_failed")
            logger.error(
                f"Failed to post payment to Cin7: cin7_sale_id={posting.cin7_sale_id} "
                f"payment_ref={payment_ref}"
            )
            await PaymentPostingRepository(db_session).release_claim(posting.id)
            raise

        await PaymentPostingRepository(db_session).mark_posted(posting, response)
        self.metrics.increment("payments_posted")

        link_repository = SalePaymentLinkRepository(db_session)
        link = await link_repository.get_by_sale_id(posting.cin7_sale_id)
        if link and link.status != PaymentLinkStatus.PAID.value:
            await link_repository.update_status(link, PaymentLinkStatus.PAID)

        logger.info(
            f"Payment posted to Cin7: cin7_sale_id={posting.cin7_sale_id} amount={amount} "
            f"payment_ref={payment_ref}"
        )
        return response
