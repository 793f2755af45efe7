"""PaymentPosting model: a Stripe payment reported back to a Cin7 sale."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.db.session import Base
from paysync.db.types import JSONType, utcnow


class PaymentPosting(Base):
    """One row per (sale, payment intent) pair.

    Rows are created unposted before the Cin7 call and flipped to posted only
    once Cin7 confirms. The unique pair stops duplicate rows and the
    posting_started_at claim stops two callers posting the same row.
    """

    __tablename__ = "payment_postings"
    __table_args__ = (
        UniqueConstraint(
            "cin7_sale_id", "stripe_payment_intent_id", name="uq_payment_postings_sale_intent"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    cin7_sale_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Payment intent id, or the charge id when the event only carries a charge
    stripe_payment_intent_id: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_charge_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    posted_to_cin7: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    cin7_response: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    # Set by the caller that won the right to send this row to Cin7
    posting_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentPosting(id={self.id}, cin7_sale_id={self.cin7_sale_id}, "
            f"intent={self.stripe_payment_intent_id}, posted={self.posted_to_cin7})>"
        )
