"""Tests for repository uniqueness and query behavior."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from paysync.db.models.sale_payment_link import PaymentLinkStatus
from paysync.repositories import (
    PaymentLinkAlreadyExistsError,
    PaymentPostingRepository,
    SalePaymentLinkRepository,
    WebhookEventRepository,
)


@pytest.mark.asyncio
async def test_webhook_event_create_is_unique(db_session: AsyncSession):
    repository = WebhookEventRepository(db_session)

    assert await repository.create("evt_1", "charge.succeeded", {"id": "evt_1"}) is True
    assert await repository.create("evt_1", "charge.succeeded", {"id": "evt_1"}) is False
    assert await repository.exists("evt_1") is True

    event = await repository.get_by_event_id("evt_1")
    assert event is not None
    assert event.processed is False


@pytest.mark.asyncio
async def test_webhook_event_processed_flag_round_trip(db_session: AsyncSession):
    repository = WebhookEventRepository(db_session)
    await repository.create("evt_2", "charge.succeeded", None)

    await repository.mark_processed("evt_2")
    assert [e.event_id for e in await repository.list_unprocessed()] == []

    await repository.reset_processed("evt_2")
    assert [e.event_id for e in await repository.list_unprocessed()] == ["evt_2"]


@pytest.mark.asyncio
async def test_mark_processed_for_posting_matches_intent_or_charge(make_webhook_event, db_session):
    await make_webhook_event("evt_a", cin7_sale_id="sale-1", stripe_payment_intent_id="pi_1")
    await make_webhook_event("evt_b", cin7_sale_id="sale-1", stripe_charge_id="pi_1")
    await make_webhook_event("evt_c", cin7_sale_id="sale-2", stripe_payment_intent_id="pi_1")

    repository = WebhookEventRepository(db_session)
    marked = await repository.mark_processed_for_posting("sale-1", "pi_1")

    assert marked == 2
    assert [e.event_id for e in await repository.list_unprocessed()] == ["evt_c"]


@pytest.mark.asyncio
async def test_payment_posting_pair_is_unique(db_session: AsyncSession):
    repository = PaymentPostingRepository(db_session)

    first, created = await repository.create_unposted("sale-1", "pi_1", "ch_1", 15000, "usd")
    assert created is True
    assert first.currency == "USD"

    second, created = await repository.create_unposted("sale-1", "pi_1", "ch_1", 15000, "usd")
    assert created is False
    assert second.id == first.id

    # Same intent against another sale is a separate posting
    _, created = await repository.create_unposted("sale-2", "pi_1", "ch_1", 15000, "usd")
    assert created is True


@pytest.mark.asyncio
async def test_payment_posting_claim_is_taken_once(
    make_posting, db_session: AsyncSession, session_factory
):
    posting = await make_posting()
    repository = PaymentPostingRepository(db_session)

    async with session_factory() as other_session:
        assert await repository.claim(posting.id) is True
        assert await PaymentPostingRepository(other_session).claim(posting.id) is False

    await repository.release_claim(posting.id)
    assert await repository.claim(posting.id) is True
    assert await repository.claim(posting.id, force=True) is True


@pytest.mark.asyncio
async def test_posted_payment_cannot_be_claimed(make_posting, db_session: AsyncSession):
    posting = await make_posting(posted=True)
    repository = PaymentPostingRepository(db_session)

    await repository.release_claim(posting.id)

    assert await repository.claim(posting.id) is False
    assert await repository.claim(posting.id, force=True) is True


@pytest.mark.asyncio
async def test_list_unposted_paginates(make_posting, db_session: AsyncSession):
    for i in range(3):
        await make_posting("sale-1", f"pi_{i}")
    await make_posting("sale-1", "pi_posted", posted=True)

    repository = PaymentPostingRepository(db_session)

    page, total = await repository.list_unposted(limit=2, offset=0)
    assert total == 3
    assert [p.stripe_payment_intent_id for p in page] == ["pi_0", "pi_1"]

    page, total = await repository.list_unposted(limit=2, offset=2)
    assert total == 3
    assert [p.stripe_payment_intent_id for p in page] == ["pi_2"]


@pytest.mark.asyncio
async def test_payment_link_is_unique_per_sale(db_session: AsyncSession):
    repository = SalePaymentLinkRepository(db_session)
    await repository.create("sale-1", "SO-1", "plink_1", "https://buy.stripe.com/1", 15000, "usd")

    with pytest.raises(PaymentLinkAlreadyExistsError):
        await repository.create("sale-1", "SO-1", "plink_2", "https://buy.stripe.com/2", 15000, "usd")

    link = await repository.get_by_sale_id("sale-1")
    assert link is not None
    assert link.stripe_payment_link_id == "plink_1"
    assert link.status == PaymentLinkStatus.PENDING.value


@pytest.mark.asyncio
async def test_payment_link_status_update_returns_old_status(test_payment_link, db_session: AsyncSession):
    repository = SalePaymentLinkRepository(db_session)

    old_status = await repository.update_status(test_payment_link, PaymentLinkStatus.PAID)

    assert old_status == "pending"
    found = await repository.get_by_id(test_payment_link.id)
    assert found is not None
    assert found.status == "paid"
