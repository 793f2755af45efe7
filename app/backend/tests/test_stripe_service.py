"""Tests for StripeService (signature verification and payment links)."""

import json
from types import SimpleNamespace

import pytest
import stripe
from pytest_mock import MockerFixture

from paysync.core.exceptions import (
    InvalidSignatureError,
    NotConfiguredError,
    StripeAPIError,
    WebhookNotConfiguredError,
)
from paysync.core.metrics import MetricsCollector
from paysync.services.stripe.stripe_service import StripeService
from tests.fixtures.stripe_events import make_event, sign_payload


def test_verify_webhook_accepts_valid_signature(stripe_service: StripeService):
    body = json.dumps(make_event())

    event = stripe_service.verify_webhook(body.encode(), sign_payload(body))

    assert event.id == "evt_test_1"
    assert event.type == "charge.succeeded"
    assert event.data.object["metadata"]["cin7_sale_id"] == "sale-1001"


def test_verify_webhook_rejects_wrong_secret(stripe_service: StripeService):
    body = json.dumps(make_event())

    with pytest.raises(InvalidSignatureError):
        stripe_service.verify_webhook(body.encode(), sign_payload(body, secret="whsec_other"))


def test_verify_webhook_rejects_tampered_body(stripe_service: StripeService):
    body = json.dumps(make_event(amount=15000))
    signature = sign_payload(body)
    tampered = json.dumps(make_event(amount=1))

    with pytest.raises(InvalidSignatureError):
        stripe_service.verify_webhook(tampered.encode(), signature)


def test_verify_webhook_rejects_stale_timestamp(stripe_service: StripeService):
    body = json.dumps(make_event())

    with pytest.raises(InvalidSignatureError):
        stripe_service.verify_webhook(body.encode(), sign_payload(body, timestamp=1_000_000))


def test_verify_webhook_rejects_malformed_event(stripe_service: StripeService):
    body = json.dumps({"object": "event"})

    with pytest.raises(InvalidSignatureError, match="Malformed"):
        stripe_service.verify_webhook(body.encode(), sign_payload(body))


def test_verify_webhook_requires_secret(metrics: MetricsCollector):
    service = StripeService(api_key="sk_test", webhook_secret=None, metrics=metrics)
    body = json.dumps(make_event())

    assert service.webhooks_configured is False
    with pytest.raises(WebhookNotConfiguredError) as exc_info:
        service.verify_webhook(body.encode(), sign_payload(body))
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_create_payment_link(
    stripe_service: StripeService, metrics: MetricsCollector, mocker: MockerFixture
):
    price_create = mocker.patch("stripe.Price.create", return_value=SimpleNamespace(id="price_1"))
    link_create = mocker.patch(
        "stripe.PaymentLink.create",
        return_value=SimpleNamespace(id="plink_1", url="https://buy.stripe.com/plink_1", active=True),
    )

    link = await stripe_service.create_payment_link(
        cin7_sale_id="sale-1", cin7_reference="SO-1", amount=15000, currency="USD"
    )

    assert link.id == "plink_1"
    assert link.url == "https://buy.stripe.com/plink_1"
    assert link.metadata == {"cin7_sale_id": "sale-1", "cin7_reference": "SO-1"}

    price_kwargs = price_create.call_args.kwargs
    assert price_kwargs["currency"] == "usd"
    assert price_kwargs["unit_amount"] == 15000
    assert price_kwargs["product_data"] == {"name": "Sale #SO-1"}
    assert price_kwargs["api_key"] == "sk_test_paysync"
    assert price_kwargs["idempotency_key"] == "price:sale-1:15000:usd"

    link_kwargs = link_create.call_args.kwargs
    assert link_kwargs["line_items"] == [{"price": "price_1", "quantity": 1}]
    assert link_kwargs["payment_intent_data"] == {
        "metadata": {"cin7_sale_id": "sale-1", "cin7_reference": "SO-1"}
    }
    assert link_kwargs["idempotency_key"] == "payment-link:sale-1:price_1"

    snapshot = metrics.snapshot()
    assert snapshot["stripe_api_calls"] == 2
    assert snapshot["response_times"]["stripe_count"] == 2


@pytest.mark.asyncio
async def test_stripe_error_is_mapped(
    stripe_service: StripeService, metrics: MetricsCollector, mocker: MockerFixture
):
    mocker.patch("stripe.Price.create", side_effect=stripe.APIConnectionError("network down"))

    with pytest.raises(StripeAPIError) as exc_info:
        await stripe_service.create_payment_link("sale-1", "SO-1", 15000, "USD")

    assert exc_info.value.status_code == 502
    assert metrics.snapshot()["stripe_api_errors"] == 1


@pytest.mark.asyncio
async def test_create_payment_link_requires_api_key(metrics: MetricsCollector, mocker: MockerFixture):
    price_create = mocker.patch("stripe.Price.create")
    service = StripeService(api_key=None, webhook_secret="whsec", metrics=metrics)

    with pytest.raises(NotConfiguredError):
        await service.create_payment_link("sale-1", "SO-1", 15000, "USD")

    price_create.assert_not_called()


@pytest.mark.asyncio
async def test_retrieve_payment_link(stripe_service: StripeService, mocker: MockerFixture):
    retrieve = mocker.patch(
        "stripe.PaymentLink.retrieve",
        return_value=SimpleNamespace(
            id="plink_1",
            url="https://buy.stripe.com/plink_1",
            active=False,
            metadata={"cin7_sale_id": "sale-1"},
        ),
    )

    link = await stripe_service.retrieve_payment_link("plink_1")

    assert link.active is False
    assert link.metadata == {"cin7_sale_id": "sale-1"}
    assert retrieve.call_args.kwargs["id"] == "plink_1"
