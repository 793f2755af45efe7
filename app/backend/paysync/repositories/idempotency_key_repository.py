"""Repository for IdempotencyKey rows."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paysync.db.models.idempotency_key import IdempotencyKey

logger = logging.getLogger(__name__)


class IdempotencyKeyRepository:
    """Data access for idempotency reservations."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def insert(self, key: str, operation: str, expires_at: datetime) -> bool:
        """Insert a reservation row.

        Returns:
            True if inserted, False if the key already exists
        """
        try:
            self.db.add(IdempotencyKey(key=key, operation=operation, expires_at=expires_at))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to create idempotency key: key=%s", key)
            raise

        logger.info("Created idempotency key: key=%s operation=%s", key, operation)
        return True

    async def get(self, key: str) -> IdempotencyKey | None:
        result = await self.db.execute(select(IdempotencyKey).where(IdempotencyKey.key == key))
        return result.scalar_one_or_none()

    async def get_live(self, key: str, now: datetime) -> IdempotencyKey | None:
        result = await self.db.execute(
            select(IdempotencyKey).where(IdempotencyKey.key == key, IdempotencyKey.expires_at > now)
        )
        return result.scalar_one_or_none()

    async def update_response(self, key: str, response_data: dict[str, Any]) -> None:
        try:
            await self.db.execute(
                update(IdempotencyKey)
                .where(IdempotencyKey.key == key)
                .values(response_data=response_data)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to update idempotency key response data: key=%s", key)
            raise

        logger.info("Updated idempotency key response data: key=%s", key)

    async def delete_expired(self, now: datetime, key: str | None = None) -> int:
        """Delete rows with ``expires_at <= now``, optionally restricted to one key."""
        stmt = delete(IdempotencyKey).where(IdempotencyKey.expires_at <= now)
        if key is not None:
            stmt = stmt.where(IdempotencyKey.key == key)
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Failed to delete expired idempotency keys")
            raise
        return result.rowcount or 0

    async def list_expired(self, now: datetime, limit: int = 100) -> list[IdempotencyKey]:
        result = await self.db.execute(
            select(IdempotencyKey)
            .where(IdempotencyKey.expires_at <= now)
            .order_by(IdempotencyKey.expires_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
