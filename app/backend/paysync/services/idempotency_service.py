"""Idempotency guard for side-effecting operations that are not storage-backed.

A reservation is a row in ``idempotency_keys``. The unique index on ``key`` is
the concurrency primitive: the insert that loses the race is the
"already held" outcome, not an error.

A reservation whose operation crashed midway stays live until it expires.
There is no release-on-failure step, so ``IDEMPOTENCY_KEY_TTL_HOURS`` bounds
how long such a sale is blocked. Operators can inspect and purge expired keys
through the admin API.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from paysync.db.models.idempotency_key import IdempotencyKey
from paysync.db.types import utcnow
from paysync.repositories.idempotency_key_repository import IdempotencyKeyRepository

logger = logging.getLogger(__name__)

CREATE_PAYMENT_LINK = "create-link"


class ReservationResult(str, Enum):
    INSERTED = "inserted"
    ALREADY_HELD = "already_held"


def build_key(operation: str, target: str | int) -> str:
    """Deterministic key so concurrent triggers for the same target collide."""
    return f"{operation}:{target}"


class IdempotencyService:
    """Reserve / inspect / complete idempotency keys."""

    def __init__(self, db_session: AsyncSession, default_ttl: timedelta = timedelta(hours=24)):
        self.repository = IdempotencyKeyRepository(db_session)
        self.default_ttl = default_ttl

    async def reserve(
        self, key: str, operation: str, ttl: timedelta | None = None
    ) -> ReservationResult:
        """Reserve ``key`` for ``operation``.

        An expired row for the same key is purged first so the key can be
        reused after its window closes.
        """
        now = utcnow()
        expires_at = now + (ttl or self.default_ttl)

        if await self.repository.insert(key, operation, expires_at):
            return ReservationResult.INSERTED

        # Key exists: reclaim it only if it has expired
        if await self.repository.delete_expired(now, key=key):
            logger.info("Reclaimed expired idempotency key: key=%s", key)
            if await self.repository.insert(key, operation, expires_at):
                return ReservationResult.INSERTED

        logger.debug("Idempotency key already held: key=%s", key)
        return ReservationResult.ALREADY_HELD

    async def exists_and_live(self, key: str) -> bool:
        return await self.repository.get_live(key, utcnow()) is not None

    async def attach_result(self, key: str, payload: dict[str, Any]) -> None:
        await self.repository.update_response(key, payload)

    async def get_result(self, key: str) -> dict[str, Any] | None:
        row = await self.repository.get_live(key, utcnow())
        return row.response_data if row else None

    async def purge_expired(self, now: datetime | None = None) -> int:
        deleted = await self.repository.delete_expired(now or utcnow())
        if deleted:
            logger.info("Deleted expired idempotency keys: count=%s", deleted)
        return deleted

    async def list_expired(self, limit: int = 100) -> list[IdempotencyKey]:
        return await self.repository.list_expired(utcnow(), limit=limit)
