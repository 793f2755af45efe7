"""Repository for WebhookEvent rows."""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paysync.db.models.webhook_event import WebhookEvent
from paysync.db.types import utcnow

logger = logging.getLogger(__name__)


class WebhookEventRepository:
    """Data access for inbound Stripe events."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def exists(self, event_id: str) -> bool:
        """Fast-path duplicate check. The unique index on insert is authoritative."""
        result = await self.db.execute(
            select(func.count(WebhookEvent.id)).where(WebhookEvent.event_id == event_id)
        )
        return result.scalar_one() > 0

    async def get_by_event_id(self, event_id: str) -> WebhookEvent | None:
        result = await self.db.execute(select(WebhookEvent).where(WebhookEvent.event_id == event_id))
        return result.scalar_one_or_none()

    async def create(
        self, event_id: str, event_type: str, raw_event: dict[str, Any] | None
    ) -> bool:
        """Insert an unprocessed event row.

        Returns:
            True if inserted, False if the event id was already recorded
        """
        event = WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            raw_event=raw_event,
            processed=False,
        )
        try:
            self.db.add(event)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Webhook event already recorded: event_id=%s", event_id)
            return False
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to create webhook event: event_id=%s", event_id)
            raise

        logger.info("Created webhook event record: event_id=%s type=%s", event_id, event_type)
        return True

    async def update_linkage(
        self,
        event_id: str,
        *,
        cin7_sale_id: str,
        cin7_reference: str | None,
        stripe_payment_intent_id: str | None,
        stripe_charge_id: str | None,
        amount: int,
        currency: str,
    ) -> None:
        """Record the sale linkage extracted from the payload."""
        await self._execute_update(
            event_id,
            "update linkage",
            cin7_sale_id=cin7_sale_id,
            cin7_reference=cin7_reference,
            stripe_payment_intent_id=stripe_payment_intent_id,
            stripe_charge_id=stripe_charge_id,
            amount=amount,
            currency=currency,
        )

    async def mark_processed(self, event_id: str) -> None:
        await self._execute_update(
            event_id, "mark processed", processed=True, processed_at=utcnow()
        )
        logger.info("Marked webhook event as processed: event_id=%s", event_id)

    async def reset_processed(self, event_id: str) -> None:
        """Clear the processed flag so the side-effect stage can run again."""
        await self._execute_update(event_id, "reset processed", processed=False, processed_at=None)
        logger.info("Reset webhook event to unprocessed: event_id=%s", event_id)

    async def mark_processed_for_posting(self, cin7_sale_id: str, payment_ref: str) -> int:
        """Mark unprocessed events linked to a (sale, intent-or-charge) pair processed."""
        stmt = (
            update(WebhookEvent)
            .where(
                WebhookEvent.cin7_sale_id == cin7_sale_id,
                WebhookEvent.processed.is_(False),
                (WebhookEvent.stripe_payment_intent_id == payment_ref)
                | (WebhookEvent.stripe_charge_id == payment_ref),
            )
            .values(processed=True, processed_at=utcnow())
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(
                "Failed to mark webhook events processed: cin7_sale_id=%s payment_ref=%s",
                cin7_sale_id,
                payment_ref,
            )
            raise
        return result.rowcount or 0

    async def list_unprocessed(self, limit: int = 100) -> list[WebhookEvent]:
        result = await self.db.execute(
            select(WebhookEvent)
            .where(WebhookEvent.processed.is_(False))
            .order_by(WebhookEvent.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_types(
        self,
        event_types: Iterable[str],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        """Count events of the given types created within [start, end]."""
        query = select(func.count(WebhookEvent.id)).where(
            WebhookEvent.event_type.in_(list(event_types))
        )
        if start is not None:
            query = query.where(WebhookEvent.created_at >= start)
        if end is not None:
            query = query.where(WebhookEvent.created_at <= end)
        result = await self.db.execute(query)
        return result.scalar_one()

    async def _execute_update(self, event_id: str, operation: str, **values: Any) -> None:
        stmt = update(WebhookEvent).where(WebhookEvent.event_id == event_id).values(**values)
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to %s for webhook event: event_id=%s", operation, event_id)
            raise
