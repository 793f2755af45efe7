"""SalePaymentLink model: one Stripe payment link per Cin7 sale."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.db.session import Base
from paysync.db.types import utcnow


class PaymentLinkStatus(str, Enum):
    """Lifecycle of a generated payment link."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class SalePaymentLink(Base):
    """Payment link generated for an eligible Cin7 sale."""

    __tablename__ = "sale_payment_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Uniqueness on the sale id is what keeps a sale at a single link
    cin7_sale_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    cin7_reference: Mapped[str] = mapped_column(String(255), nullable=False)

    stripe_payment_link_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    stripe_payment_link_url: Mapped[str] = mapped_column(String(1024), nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentLinkStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<SalePaymentLink(id={self.id}, cin7_sale_id={self.cin7_sale_id}, "
            f"status={self.status})>"
        )
