"""IdempotencyKey model: reservation rows for side-effecting operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from paysync.db.session import Base
from paysync.db.types import JSONType, utcnow


class IdempotencyKey(Base):
    """A live key blocks a second attempt at the same operation.

    Keys are never released on failure; a crashed attempt keeps the key live
    until ``expires_at``.
    """

    __tablename__ = "idempotency_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(100), nullable=False)
    response_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<IdempotencyKey(key={self.key}, operation={self.operation})>"
