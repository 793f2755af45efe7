"""Tests for the webhook side-effect stage run against shared storage."""

import asyncio

import httpx
import pytest
from pytest_mock import MockerFixture
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paysync.core.exceptions import Cin7APIError
from paysync.core.metrics import MetricsCollector
from paysync.db.models.payment_posting import PaymentPosting
from paysync.db.models.webhook_event import WebhookEvent
from paysync.repositories.webhook_event_repository import WebhookEventRepository
from paysync.schemas.stripe_event import StripeEvent
from paysync.services.cin7.cin7_service import Cin7Service
from paysync.services.payments.webhook_processor import ProcessOutcome, WebhookProcessor
from tests.fixtures.cin7 import CIN7_BASE_URL, FakeCin7
from tests.fixtures.stripe_events import make_event


@pytest.fixture
def slow_cin7_service(fake_cin7: FakeCin7, metrics: MetricsCollector) -> Cin7Service:
    """Cin7Service whose calls take long enough for concurrent work to overlap."""

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.05)
        return fake_cin7.handler(request)

    return Cin7Service(
        base_url=CIN7_BASE_URL,
        account_id="test-account",
        api_key="test-cin7-key",
        metrics=metrics,
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def processor(
    session_factory: async_sessionmaker[AsyncSession],
    slow_cin7_service: Cin7Service,
    metrics: MetricsCollector,
) -> WebhookProcessor:
    return WebhookProcessor(session_factory, slow_cin7_service, metrics)


async def _ingest(processor: WebhookProcessor, *events: dict) -> list[str]:
    for event in events:
        await processor.ingest(StripeEvent.model_validate(event))
    return [event["id"] for event in events]


async def _postings(session_factory: async_sessionmaker[AsyncSession]) -> list[PaymentPosting]:
    async with session_factory() as session:
        result = await session.execute(select(PaymentPosting).order_by(PaymentPosting.id))
        return list(result.scalars().all())


async def _events(session_factory: async_sessionmaker[AsyncSession]) -> list[WebhookEvent]:
    async with session_factory() as session:
        result = await session.execute(select(WebhookEvent).order_by(WebhookEvent.event_id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_concurrent_events_for_one_payment_post_once(
    processor: WebhookProcessor, fake_cin7: FakeCin7, session_factory, metrics: MetricsCollector
):
    event_ids = await _ingest(
        processor,
        make_event("evt_charge", "charge.succeeded"),
        make_event("evt_intent", "payment_intent.succeeded"),
        make_event("evt_checkout", "checkout.session.completed"),
    )

    outcomes = await asyncio.gather(*(processor.process_event(event_id) for event_id in event_ids))

    assert outcomes.count(ProcessOutcome.POSTED) == 1
    assert set(outcomes) <= {
        ProcessOutcome.POSTED,
        ProcessOutcome.POSTING_IN_PROGRESS,
        ProcessOutcome.ALREADY_POSTED,
    }
    assert len(fake_cin7.payment_calls()) == 1

    postings = await _postings(session_factory)
    assert len(postings) == 1
    assert postings[0].posted_to_cin7 is True
    assert postings[0].posting_started_at is not None
    assert all(event.processed for event in await _events(session_factory))

    snapshot = metrics.snapshot()
    assert snapshot["payments_posted"] == 1
    assert snapshot["webhooks_processed"] == 3


@pytest.mark.asyncio
async def test_claimed_posting_is_not_posted_again(
    processor: WebhookProcessor, fake_cin7: FakeCin7, make_posting, session_factory
):
    await make_posting(claimed=True)
    [event_id] = await _ingest(processor, make_event("evt_late", "charge.succeeded"))

    outcome = await processor.process_event(event_id)

    assert outcome is ProcessOutcome.POSTING_IN_PROGRESS
    assert fake_cin7.payment_calls() == []
    assert (await _postings(session_factory))[0].posted_to_cin7 is False
    assert (await _events(session_factory))[0].processed is True


@pytest.mark.asyncio
async def test_cin7_failure_releases_claim_for_replay(
    processor: WebhookProcessor, fake_cin7: FakeCin7, session_factory
):
    [event_id] = await _ingest(processor, make_event())
    fake_cin7.fail_payments = True

    with pytest.raises(Cin7APIError):
        await processor.process_event(event_id)

    [posting] = await _postings(session_factory)
    assert posting.posted_to_cin7 is False
    assert posting.posting_started_at is None

    fake_cin7.fail_payments = False
    assert await processor.process_event(event_id) is ProcessOutcome.POSTED
    assert len(fake_cin7.payment_calls()) == 2


@pytest.mark.asyncio
async def test_plain_text_cin7_reply_is_stored(
    processor: WebhookProcessor, fake_cin7: FakeCin7, session_factory
):
    [event_id] = await _ingest(processor, make_event())
    fake_cin7.text_replies = True

    assert await processor.process_event(event_id) is ProcessOutcome.POSTED

    [posting] = await _postings(session_factory)
    assert posting.posted_to_cin7 is True
    assert posting.cin7_response == {"raw": "OK"}


@pytest.mark.asyncio
async def test_database_error_in_background_is_counted(
    processor: WebhookProcessor, mocker: MockerFixture, metrics: MetricsCollector
):
    mocker.patch.object(
        WebhookEventRepository,
        "get_by_event_id",
        side_effect=OperationalError("SELECT", {}, Exception("database is locked")),
    )

    await processor.process_in_background("evt_test_1")

    snapshot = metrics.snapshot()
    assert snapshot["webhooks_failed"] == 1
    assert snapshot["database_errors"] == 1
