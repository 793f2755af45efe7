"""Operator actions: replay, retry, reconcile, status override, key cleanup."""

import logging
from datetime import UTC, date, datetime, time

from sqlalchemy.ext.asyncio import AsyncSession

from paysync.core.exceptions import (
    Cin7APIError,
    ConflictError,
    NotConfiguredError,
    NotFoundError,
    UpstreamError,
)
from paysync.db.models.idempotency_key import IdempotencyKey
from paysync.db.models.payment_posting import PaymentPosting
from paysync.db.models.sale_payment_link import PaymentLinkStatus
from paysync.db.models.webhook_event import WebhookEvent
from paysync.repositories.payment_posting_repository import PaymentPostingRepository
from paysync.repositories.sale_payment_link_repository import SalePaymentLinkRepository
from paysync.repositories.webhook_event_repository import WebhookEventRepository
from paysync.schemas.admin import (
    DateRange,
    PaymentLinkStatusResponse,
    PaymentRetryResponse,
    ReconciliationReport,
    WebhookReplayResponse,
)
from paysync.services.idempotency_service import IdempotencyService
from paysync.services.payments.payment_poster import PaymentPoster, to_major_units
from paysync.services.stripe.webhook_handler import SUCCESS_EVENT_TYPES

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class AdminService:
    """Admin operations over a request-scoped session."""

    def __init__(self, db_session: AsyncSession, poster: PaymentPoster | None = None):
        self.db = db_session
        self.poster = poster
        self.events = WebhookEventRepository(db_session)
        self.postings = PaymentPostingRepository(db_session)
        self.links = SalePaymentLinkRepository(db_session)
        self.keys = IdempotencyService(db_session)

    async def replay_webhook(self, event_id: str, force: bool = False) -> WebhookReplayResponse:
        """
        Reset a stored event to unprocessed so it can be processed again.

        Raises:
            NotFoundError: If the event is unknown
            ConflictError: If it is already processed and force is not set
        """
        logger.info(f"Admin webhook replay requested: event_id={event_id} force={force}")

        event = await self.events.get_by_event_id(event_id)
        if event is None:
            raise NotFoundError("Event not found", context={"event_id": event_id})

        previously_processed = event.processed
        if previously_processed and not force:
            logger.warning(f"Event already processed, use force=true to replay: event_id={event_id}")
            raise ConflictError(
                "Event already processed. Use force=true to force replay.",
                context={"event_id": event_id, "processed": True},
            )

        await self.events.reset_processed(event_id)
        logger.info(
            f"Admin webhook marked for replay: event_id={event_id} "
            f"old_status={'processed' if previously_processed else 'unprocessed'}"
        )
        return WebhookReplayResponse(
            event_id=event_id,
            previously_processed=previously_processed,
            processed=False,
            message="Event marked for replay. Process it with POST /api/admin/webhooks/{event_id}/process.",
        )

    async def list_unprocessed_events(self, limit: int = MAX_PAGE_SIZE) -> list[WebhookEvent]:
        return await self.events.list_unprocessed(limit=min(limit, MAX_PAGE_SIZE))

    async def list_unposted(self, limit: int, offset: int) -> tuple[list[PaymentPosting], int]:
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        logger.info(f"Admin fetching unposted payments: limit={limit} offset={offset}")
        return await self.postings.list_unposted(limit=limit, offset=max(offset, 0))

    async def retry_posting(self, posting_id: int, force: bool = False) -> PaymentRetryResponse:
        """
        Post an unposted payment to Cin7 again.

        On success the sale's link is marked paid and any unprocessed events for
        the same payment are marked processed. On failure nothing is changed.

        Raises:
            NotFoundError: If the posting is unknown
            ConflictError: If it is already posted or being posted and force is not set
            NotConfiguredError: If Cin7 credentials are missing
            UpstreamError: If Cin7 rejects the payment
        """
        logger.info(f"Admin payment retry requested: payment_posting_id={posting_id} force={force}")

        posting = await self.postings.get_by_id(posting_id)
        if posting is None:
            raise NotFoundError("Payment posting not found", context={"payment_posting_id": posting_id})

        if posting.posted_to_cin7 and not force:
            logger.warning(f"Payment already posted to Cin7, use force=true: payment_posting_id={posting_id}")
            raise ConflictError(
                "Payment already posted to Cin7. Use force=true to force retry.",
                context={"payment_posting_id": posting_id, "posted_to_cin7": True},
            )

        if self.poster is None or not self.poster.cin7.configured:
            raise NotConfiguredError(
                "CIN7_API_KEY not configured", context={"payment_posting_id": posting_id}
            )

        if not await self.postings.claim(posting_id, force=force):
            logger.warning(
                f"Payment posting already in progress, use force=true: payment_posting_id={posting_id}"
            )
            raise ConflictError(
                "Payment posting already in progress. Use force=true to force retry.",
                context={"payment_posting_id": posting_id, "posting_in_progress": True},
            )

        cin7_sale_id = posting.cin7_sale_id
        payment_ref = posting.stripe_payment_intent_id
        try:
            await self.poster.post(self.db, posting, note="admin retry")
        except Cin7APIError as e:
            logger.error(f"Admin payment retry failed: payment_posting_id={posting_id} error={e.message}")
            raise UpstreamError(
                "Failed to post payment to Cin7",
                details=e.message,
                context={"payment_posting_id": posting_id},
            ) from e

        marked = await self.events.mark_processed_for_posting(cin7_sale_id, payment_ref)
        logger.info(
            f"Admin payment retry successful: payment_posting_id={posting_id} "
            f"cin7_sale_id={cin7_sale_id} events_marked_processed={marked}"
        )
        return PaymentRetryResponse(
            payment_posting_id=posting_id,
            cin7_sale_id=cin7_sale_id,
            amount=float(to_major_units(posting.amount)),
            currency=posting.currency,
            message="Payment successfully posted to Cin7",
        )

    async def reconcile(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> ReconciliationReport:
        """Compare Stripe success events with Cin7 postings over an inclusive date range."""
        logger.info(f"Admin payment reconciliation requested: start={start_date} end={end_date}")

        start = datetime.combine(start_date, time.min, tzinfo=UTC) if start_date else None
        end = datetime.combine(end_date, time.max, tzinfo=UTC) if end_date else None

        stripe_payments = await self.events.count_by_types(SUCCESS_EVENT_TYPES, start, end)
        cin7_postings = await self.postings.count_posted(start, end)
        unposted = await self.postings.count_unposted(start, end)

        rate = f"{cin7_postings / stripe_payments * 100:.2f}%" if stripe_payments > 0 else "N/A"

        return ReconciliationReport(
            stripe_payments=stripe_payments,
            cin7_postings=cin7_postings,
            unposted=unposted,
            reconciliation_rate=rate,
            date_range=DateRange(
                start=start_date.isoformat() if start_date else "all",
                end=end_date.isoformat() if end_date else "all",
            ),
        )

    async def set_link_status(
        self, link_id: int, status: PaymentLinkStatus, reason: str | None = None
    ) -> PaymentLinkStatusResponse:
        """
        Force a payment link into a status.

        Raises:
            NotFoundError: If the link is unknown
        """
        reason = reason or "not provided"
        logger.info(
            f"Admin payment link status override requested: payment_link_id={link_id} "
            f"new_status={status.value} reason={reason}"
        )

        link = await self.links.get_by_id(link_id)
        if link is None:
            raise NotFoundError("Payment link not found", context={"payment_link_id": link_id})

        old_status = await self.links.update_status(link, status)
        return PaymentLinkStatusResponse(
            payment_link_id=link_id,
            cin7_sale_id=link.cin7_sale_id,
            old_status=old_status,
            new_status=status.value,
            reason=reason,
            message="Payment link status updated",
        )

    async def list_expired_keys(self, limit: int = MAX_PAGE_SIZE) -> list[IdempotencyKey]:
        logger.info("Admin querying expired idempotency keys")
        return await self.keys.list_expired(limit=min(limit, MAX_PAGE_SIZE))

    async def cleanup_expired_keys(self) -> int:
        deleted = await self.keys.purge_expired()
        logger.info(f"Admin idempotency key cleanup completed: deleted_count={deleted}")
        return deleted
