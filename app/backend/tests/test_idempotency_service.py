"""Tests for the idempotency guard."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paysync.services.idempotency_service import (
    CREATE_PAYMENT_LINK,
    IdempotencyService,
    ReservationResult,
    build_key,
)


def test_build_key():
    assert build_key(CREATE_PAYMENT_LINK, "sale-1") == "create-link:sale-1"


@pytest.mark.asyncio
async def test_reserve_then_already_held(db_session: AsyncSession):
    service = IdempotencyService(db_session)
    key = build_key(CREATE_PAYMENT_LINK, "sale-1")

    assert await service.reserve(key, CREATE_PAYMENT_LINK) is ReservationResult.INSERTED
    assert await service.reserve(key, CREATE_PAYMENT_LINK) is ReservationResult.ALREADY_HELD
    assert await service.exists_and_live(key) is True


@pytest.mark.asyncio
async def test_concurrent_reservations_are_exclusive(session_factory: async_sessionmaker[AsyncSession]):
    """Exactly one of several simultaneous reservations for the same key wins."""
    key = build_key(CREATE_PAYMENT_LINK, "sale-race")

    async def attempt() -> ReservationResult:
        async with session_factory() as session:
            return await IdempotencyService(session).reserve(key, CREATE_PAYMENT_LINK)

    results = await asyncio.gather(*(attempt() for _ in range(3)))

    assert results.count(ReservationResult.INSERTED) == 1
    assert results.count(ReservationResult.ALREADY_HELD) == 2


@pytest.mark.asyncio
async def test_expired_key_is_reclaimed(db_session: AsyncSession, make_idempotency_key):
    key = build_key(CREATE_PAYMENT_LINK, "sale-2")
    await make_idempotency_key(key, expires_in=timedelta(hours=-1))

    service = IdempotencyService(db_session)

    assert await service.exists_and_live(key) is False
    assert await service.reserve(key, CREATE_PAYMENT_LINK) is ReservationResult.INSERTED
    assert await service.exists_and_live(key) is True


@pytest.mark.asyncio
async def test_attach_and_get_result(db_session: AsyncSession):
    service = IdempotencyService(db_session)
    key = build_key(CREATE_PAYMENT_LINK, "sale-3")
    await service.reserve(key, CREATE_PAYMENT_LINK)

    assert await service.get_result(key) is None

    await service.attach_result(key, {"payment_link_id": "plink_1", "url": "https://buy.stripe.com/x"})

    assert await service.get_result(key) == {
        "payment_link_id": "plink_1",
        "url": "https://buy.stripe.com/x",
    }


@pytest.mark.asyncio
async def test_purge_expired_only_deletes_expired(db_session: AsyncSession, make_idempotency_key):
    await make_idempotency_key("create-link:old-1", expires_in=timedelta(hours=-2))
    await make_idempotency_key("create-link:old-2", expires_in=timedelta(minutes=-5))
    await make_idempotency_key("create-link:live", expires_in=timedelta(hours=3))

    service = IdempotencyService(db_session)
    expired = await service.list_expired()

    assert [row.key for row in expired] == ["create-link:old-2", "create-link:old-1"]
    assert await service.purge_expired() == 2
    assert await service.list_expired() == []
    assert await service.exists_and_live("create-link:live") is True
