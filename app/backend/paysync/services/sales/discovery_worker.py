"""Polls Cin7 for eligible sales and generates a Stripe payment link for each."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from time import perf_counter

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paysync.core.config import Settings
from paysync.core.exceptions import PaySyncError
from paysync.core.metrics import MetricsCollector
from paysync.db.types import utcnow
from paysync.repositories.sale_payment_link_repository import SalePaymentLinkRepository
from paysync.schemas.sale import Cin7Sale
from paysync.services.alerting_service import AlertingService
from paysync.services.cin7.cin7_service import Cin7Service
from paysync.services.idempotency_service import (
    CREATE_PAYMENT_LINK,
    IdempotencyService,
    ReservationResult,
    build_key,
)
from paysync.services.stripe.stripe_service import StripeService

logger = logging.getLogger(__name__)


class SaleOutcome(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"


@dataclass
class CycleStats:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    duration_ms: int = 0
    ran: bool = True


@dataclass
class WorkerConfig:
    enabled: bool = True
    poll_interval_seconds: float = 60.0
    batch_size: int = 10
    lookback_days: int = 7
    eligible_statuses: frozenset[str] = frozenset({"AUTHORISED", "INVOICED"})
    key_ttl: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkerConfig":
        return cls(
            enabled=settings.WORKER_ENABLED,
            poll_interval_seconds=settings.WORKER_POLL_INTERVAL_SECONDS,
            batch_size=settings.WORKER_BATCH_SIZE,
            lookback_days=settings.WORKER_LOOKBACK_DAYS,
            eligible_statuses=settings.eligible_statuses,
            key_ttl=timedelta(hours=settings.IDEMPOTENCY_KEY_TTL_HOURS),
        )


class SaleDiscoveryWorker:
    """Background poller that turns eligible Cin7 sales into payment links."""

    def __init__(
        self,
        config: WorkerConfig,
        session_factory: async_sessionmaker[AsyncSession],
        cin7: Cin7Service,
        stripe: StripeService,
        metrics: MetricsCollector,
        alerting: AlertingService | None = None,
    ):
        self.config = config
        self.session_factory = session_factory
        self.cin7 = cin7
        self.stripe = stripe
        self.metrics = metrics
        self.alerting = alerting

        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._cycle_running = False
        self._cycle_done = asyncio.Event()
        self._cycle_done.set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Run a cycle now and then every poll interval until stopped."""
        if self.running:
            logger.warning("Sale discovery worker already running")
            return

        if not self.config.enabled:
            logger.info("Sale discovery worker is disabled")
            return

        logger.info(
            f"Starting sale discovery worker: poll_interval={self.config.poll_interval_seconds}s "
            f"batch_size={self.config.batch_size}"
        )
        self._stopping.clear()
        self._task = asyncio.create_task(self._run_loop(), name="sale-discovery-worker")

    async def stop(self) -> None:
        """Stop polling. An in-flight cycle is allowed to finish."""
        if self._task is None:
            return

        logger.info("Stopping sale discovery worker")
        self._stopping.set()
        await self._cycle_done.wait()

        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                self.metrics.increment("worker_errors")
                logger.error(f"Error in sale discovery cycle: {str(e)}", exc_info=True)
                if self.alerting:
                    await self.alerting.send_warning(
                        "Sale discovery cycle failed", str(e), {"component": "sale-discovery-worker"}
                    )

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.config.poll_interval_seconds)
            except TimeoutError:
                continue

    async def run_cycle(self) -> CycleStats:
        """
        Fetch recently updated sales and process each one.

        Overlapping calls are skipped. A failure on one sale is logged and
        counted without aborting the rest of the batch.

        Returns:
            Per-cycle counts; ``ran`` is False when the cycle was skipped
        """
        if self._cycle_running:
            logger.warning("Previous sale discovery cycle still running, skipping")
            return CycleStats(ran=False)

        self._cycle_running = True
        self._cycle_done.clear()
        try:
            return await self._run_cycle()
        finally:
            self._cycle_running = False
            self._cycle_done.set()

    async def _run_cycle(self) -> CycleStats:
        start = perf_counter()
        stats = CycleStats()
        if not self.cin7.configured:
            logger.warning("Cin7 API key not configured, skipping sale discovery")
            stats.ran = False
            return stats

        self.metrics.increment("worker_cycles")
        logger.info("Starting sale discovery cycle")

        updated_since = (utcnow() - timedelta(days=self.config.lookback_days)).date()
        sales = await self.cin7.get_sales(updated_since=updated_since, limit=self.config.batch_size)
        logger.info(f"Fetched {len(sales)} sale(s) from Cin7")

        for sale in sales:
            try:
                outcome = await self.process_sale(sale)
            except Exception as e:
                stats.failed += 1
                if isinstance(e, SQLAlchemyError):
                    self.metrics.increment("database_errors")
                logger.error(f"Failed to process sale: cin7_sale_id={sale.sale_id} error={str(e)}")
                continue

            if outcome is SaleOutcome.CREATED:
                stats.processed += 1
            else:
                stats.skipped += 1

        stats.duration_ms = int((perf_counter() - start) * 1000)
        logger.info(
            f"Sale discovery cycle completed: processed={stats.processed} skipped={stats.skipped} "
            f"failed={stats.failed} duration_ms={stats.duration_ms}"
        )
        return stats

    async def process_sale(self, sale: Cin7Sale) -> SaleOutcome:
        """
        Create a payment link for one sale unless it already has one.

        Order matters: existing link, eligibility, reservation, amount. The
        reservation is not released when a later step fails.
        """
        async with self.session_factory() as db_session:
            links = SalePaymentLinkRepository(db_session)
            guard = IdempotencyService(db_session, default_ttl=self.config.key_ttl)

            existing = await links.get_by_sale_id(sale.sale_id)
            if existing is not None:
                logger.debug(
                    f"Payment link already exists for sale: cin7_sale_id={sale.sale_id} "
                    f"status={existing.status}"
                )
                return SaleOutcome.SKIPPED

            if not sale.status or sale.status not in self.config.eligible_statuses:
                logger.debug(f"Sale not eligible: cin7_sale_id={sale.sale_id} status={sale.status}")
                return SaleOutcome.SKIPPED

            key = build_key(CREATE_PAYMENT_LINK, sale.sale_id)
            if await guard.reserve(key, CREATE_PAYMENT_LINK) is ReservationResult.ALREADY_HELD:
                logger.debug(f"Idempotency key held, skipping: cin7_sale_id={sale.sale_id}")
                return SaleOutcome.SKIPPED

            amount = sale.amount_minor_units
            if amount <= 0:
                logger.warning(f"Sale has invalid amount, skipping: cin7_sale_id={sale.sale_id} amount={amount}")
                return SaleOutcome.SKIPPED

            logger.info(f"Creating payment link for sale: cin7_sale_id={sale.sale_id} amount={amount}")
            link = await self.stripe.create_payment_link(
                cin7_sale_id=sale.sale_id,
                cin7_reference=sale.reference,
                amount=amount,
                currency=sale.currency,
                description=f"Payment for {sale.reference}",
            )
            self.metrics.increment("payments_created")

            await links.create(
                cin7_sale_id=sale.sale_id,
                cin7_reference=sale.reference,
                stripe_payment_link_id=link.id,
                stripe_payment_link_url=link.url,
                amount=amount,
                currency=sale.currency,
            )
            await guard.attach_result(key, {"payment_link_id": link.id, "url": link.url})

        await self._write_link_to_sale(sale.sale_id, link.url)
        logger.info(f"Payment link created: cin7_sale_id={sale.sale_id} stripe_payment_link_id={link.id}")
        return SaleOutcome.CREATED

    async def _write_link_to_sale(self, sale_id: str, url: str) -> None:
        try:
            await self.cin7.update_sale_note(sale_id, f"Payment Link: {url}")
        except PaySyncError as e:
            logger.error(f"Failed to write payment link back to Cin7: cin7_sale_id={sale_id} error={e.message}")
            return
        logger.info(f"Payment link written to Cin7 sale notes: cin7_sale_id={sale_id}")
