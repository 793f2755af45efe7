"""Stripe test helpers: signed webhook payloads and a service instance."""

import hashlib
import hmac
import json
import time
from typing import Any

import pytest

from paysync.core.metrics import MetricsCollector
from paysync.services.stripe.stripe_service import StripeService

WEBHOOK_SECRET = "whsec_test_paysync"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for ``payload``."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(
    event_id: str = "evt_test_1",
    event_type: str = "charge.succeeded",
    *,
    cin7_sale_id: str | None = "sale-1001",
    cin7_reference: str | None = "SO-1001",
    charge_id: str = "ch_test_1",
    payment_intent_id: str = "pi_test_1",
    amount: int = 15000,
    currency: str = "usd",
) -> dict[str, Any]:
    """Build a Stripe event payload shaped like the real API's."""
    metadata: dict[str, str] = {}
    if cin7_sale_id is not None:
        metadata["cin7_sale_id"] = cin7_sale_id
    if cin7_reference is not None:
        metadata["cin7_reference"] = cin7_reference

    if event_type == "payment_intent.succeeded":
        obj: dict[str, Any] = {
            "id": payment_intent_id,
            "object": "payment_intent",
            "amount": amount,
            "amount_received": amount,
            "currency": currency,
            "latest_charge": charge_id,
            "metadata": metadata,
        }
    elif event_type == "checkout.session.completed":
        obj = {
            "id": "cs_test_1",
            "object": "checkout.session",
            "amount_total": amount,
            "currency": currency,
            "payment_intent": payment_intent_id,
            "metadata": metadata,
        }
    else:
        obj = {
            "id": charge_id,
            "object": "charge",
            "amount": amount,
            "currency": currency,
            "payment_intent": payment_intent_id,
            "metadata": metadata,
        }

    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    }


def signed_request(event: dict[str, Any]) -> tuple[str, dict[str, str]]:
    """Serialize an event and return (body, headers) ready to POST."""
    body = json.dumps(event)
    return body, {"Stripe-Signature": sign_payload(body), "Content-Type": "application/json"}


@pytest.fixture
def stripe_service(metrics: MetricsCollector) -> StripeService:
    return StripeService(
        api_key="sk_test_paysync",
        webhook_secret=WEBHOOK_SECRET,
        metrics=metrics,
        api_version="2023-10-16",
        webhook_tolerance=300,
    )
