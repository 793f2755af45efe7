"""Webhook ingestion: dedupe on receipt, then apply payment side effects."""

import logging
from enum import Enum
from time import perf_counter

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paysync.core.exceptions import NotFoundError
from paysync.core.metrics import MetricsCollector
from paysync.repositories.payment_posting_repository import PaymentPostingRepository
from paysync.repositories.webhook_event_repository import WebhookEventRepository
from paysync.schemas.stripe_event import StripeEvent
from paysync.services.alerting_service import AlertingService
from paysync.services.cin7.cin7_service import Cin7Service
from paysync.services.payments.payment_poster import PaymentPoster
from paysync.services.stripe.webhook_handler import WebhookHandler

logger = logging.getLogger(__name__)


class IngestResult(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class ProcessOutcome(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"
    ALREADY_PROCESSED = "already_processed"
    NOT_ACTIONABLE = "not_actionable"
    CIN7_NOT_CONFIGURED = "cin7_not_configured"
    POSTING_IN_PROGRESS = "posting_in_progress"


class WebhookProcessor:
    """Runs the webhook pipeline against sessions from an injected factory.

    Each call opens its own session so the side-effect stage can run after the
    request that received the event has already returned.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cin7: Cin7Service,
        metrics: MetricsCollector,
        alerting: AlertingService | None = None,
    ):
        self.session_factory = session_factory
        self.cin7 = cin7
        self.metrics = metrics
        self.alerting = alerting
        self.poster = PaymentPoster(cin7, metrics)

    async def ingest(self, event: StripeEvent) -> IngestResult:
        """
        Record a verified event before it is acknowledged.

        The exists() lookup is a fast path. A concurrent delivery that slips
        past it collides on the unique event_id and is reported as a duplicate.
        """
        self.metrics.increment("webhooks_received")

        async with self.session_factory() as db_session:
            repository = WebhookEventRepository(db_session)

            if await repository.exists(event.id):
                logger.info(f"Event already received, skipping: event_id={event.id} type={event.type}")
                return IngestResult.DUPLICATE

            inserted = await repository.create(
                event_id=event.id,
                event_type=event.type,
                raw_event=event.model_dump(mode="json"),
            )

        return IngestResult.INSERTED if inserted else IngestResult.DUPLICATE

    async def process_event(self, event_id: str) -> ProcessOutcome:
        """
        Apply the side effects of a stored event.

        The event is marked processed only after every step completed or was
        skipped. A Cin7 failure propagates and leaves it unprocessed.

        Raises:
            NotFoundError: If no event with this id is stored
            Cin7APIError: If posting the payment fails
        """
        start = perf_counter()
        try:
            async with self.session_factory() as db_session:
                return await self._process(db_session, event_id)
        finally:
            self.metrics.record_time("webhook", (perf_counter() - start) * 1000)

    async def _process(self, db_session: AsyncSession, event_id: str) -> ProcessOutcome:
        events = WebhookEventRepository(db_session)
        postings = PaymentPostingRepository(db_session)

        stored = await events.get_by_event_id(event_id)
        if stored is None:
            raise NotFoundError("Webhook event not found", context={"event_id": event_id})

        if stored.processed:
            logger.info(f"Event already processed: event_id={event_id}")
            return ProcessOutcome.ALREADY_PROCESSED

        logger.info(f"Starting webhook processing: event_id={event_id} type={stored.event_type}")

        try:
            event = StripeEvent.model_validate(stored.raw_event or {})
            payment = WebhookHandler.parse_payment_data(event)
        except PydanticValidationError as e:
            logger.warning(f"Stored event payload is not usable: event_id={event_id} error={str(e)}")
            payment = None

        if payment is None:
            await events.mark_processed(event_id)
            self.metrics.increment("webhooks_processed")
            return ProcessOutcome.NOT_ACTIONABLE

        payment_ref = payment.payment_ref
        await events.update_linkage(
            event_id,
            cin7_sale_id=payment.cin7_sale_id,
            cin7_reference=payment.cin7_reference,
            stripe_payment_intent_id=payment.stripe_payment_intent_id,
            stripe_charge_id=payment.stripe_charge_id,
            amount=payment.amount,
            currency=payment.currency,
        )

        posting = await postings.get_by_sale_and_intent(payment.cin7_sale_id, payment_ref)
        if posting is None:
            posting, _ = await postings.create_unposted(
                cin7_sale_id=payment.cin7_sale_id,
                stripe_payment_intent_id=payment_ref,
                stripe_charge_id=payment.stripe_charge_id,
                amount=payment.amount,
                currency=payment.currency,
            )
        else:
            logger.info(
                f"Resuming existing payment posting: id={posting.id} posted={posting.posted_to_cin7}"
            )

        if posting.posted_to_cin7:
            logger.info(
                f"Payment already posted to Cin7, skipping: cin7_sale_id={payment.cin7_sale_id} "
                f"payment_ref={payment_ref}"
            )
            await events.mark_processed(event_id)
            self.metrics.increment("webhooks_processed")
            return ProcessOutcome.ALREADY_POSTED

        if not self.cin7.configured:
            logger.warning(
                f"Cin7 API key not configured, payment left unposted: "
                f"cin7_sale_id={payment.cin7_sale_id} posting_id={posting.id}"
            )
            await events.mark_processed(event_id)
            self.metrics.increment("webhooks_processed")
            return ProcessOutcome.CIN7_NOT_CONFIGURED

        if not await postings.claim(posting.id):
            logger.info(
                f"Payment posting claimed by another delivery, skipping: "
                f"cin7_sale_id={payment.cin7_sale_id} posting_id={posting.id}"
            )
            await events.mark_processed(event_id)
            self.metrics.increment("webhooks_processed")
            return ProcessOutcome.POSTING_IN_PROGRESS

        await self.poster.post(db_session, posting)

        await events.mark_processed(event_id)
        self.metrics.increment("webhooks_processed")
        logger.info(f"Webhook processing complete: event_id={event_id} cin7_sale_id={payment.cin7_sale_id}")
        return ProcessOutcome.POSTED

    async def process_in_background(self, event_id: str) -> None:
        """Background-task entry point. The request was already acknowledged, so failures are reported, not raised."""
        try:
            await self.process_event(event_id)
        except Exception as e:
            self.metrics.increment("webhooks_failed")
            if isinstance(e, SQLAlchemyError):
                self.metrics.increment("database_errors")
            logger.error(f"Async webhook processing failed: event_id={event_id} error={str(e)}", exc_info=True)
            if self.alerting:
                await self.alerting.send_warning(
                    "Webhook processing failed",
                    "Payment was not posted to Cin7. The event stays unprocessed for replay or retry.",
                    {"event_id": event_id, "error": str(e)},
                )
