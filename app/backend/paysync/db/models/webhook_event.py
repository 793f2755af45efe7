"""WebhookEvent model for inbound Stripe notifications (idempotency barrier)."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.db.session import Base
from paysync.db.types import JSONType, utcnow


class WebhookEvent(Base):
    """Tracks every Stripe event seen by the webhook endpoint.

    The row is written before the sender is acknowledged. A second delivery of
    the same ``event_id`` collides on the unique index and becomes a no-op.
    """

    __tablename__ = "webhook_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Linkage extracted from the payload once it has been parsed
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_charge_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cin7_sale_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    cin7_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    raw_event: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<WebhookEvent(id={self.id}, event_id={self.event_id}, "
            f"type={self.event_type}, processed={self.processed})>"
        )
