"""Stripe webhook handler for extracting Cin7 sale linkage from payment events."""

import logging
from typing import Any

from paysync.schemas.stripe_event import PaymentCompletedData, StripeEvent

logger = logging.getLogger(__name__)

CHARGE_SUCCEEDED = "charge.succeeded"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"

SUCCESS_EVENT_TYPES = frozenset(
    {CHARGE_SUCCEEDED, PAYMENT_INTENT_SUCCEEDED, CHECKOUT_SESSION_COMPLETED}
)


def _object_id(value: Any) -> str | None:
    """Return the id of a field that Stripe may send collapsed (str) or expanded (dict)."""
    if isinstance(value, dict):
        value = value.get("id")
    return value or None


class WebhookHandler:
    """Handler for Stripe payment success events."""

    @staticmethod
    def parse_payment_data(event: StripeEvent) -> PaymentCompletedData | None:
        """
        Extract sale linkage and payment amounts from a Stripe event.

        Args:
            event: Verified Stripe event

        Returns:
            Parsed payment data, or None when the event is not actionable
            (unsupported type, missing sale metadata, no payment reference)
        """
        if event.type not in SUCCESS_EVENT_TYPES:
            logger.info(f"Ignoring non-payment event type: {event.type}")
            return None

        obj = event.data.object
        metadata = obj.get("metadata") or {}
        cin7_sale_id = metadata.get("cin7_sale_id")

        if not cin7_sale_id:
            logger.warning(f"Webhook event missing Cin7 metadata: event_id={event.id} type={event.type}")
            return None

        cin7_sale_id = str(cin7_sale_id)
        cin7_reference = metadata.get("cin7_reference") or f"SALE-{cin7_sale_id}"

        if event.type == CHARGE_SUCCEEDED:
            charge_id = _object_id(obj.get("id"))
            intent_id = _object_id(obj.get("payment_intent"))
            amount = obj.get("amount")
        elif event.type == PAYMENT_INTENT_SUCCEEDED:
            intent_id = _object_id(obj.get("id"))
            charge_id = _object_id(obj.get("latest_charge"))
            amount = obj.get("amount_received") or obj.get("amount")
        else:
            intent_id = _object_id(obj.get("payment_intent"))
            charge_id = None
            amount = obj.get("amount_total")

        if not intent_id and not charge_id:
            logger.warning(f"Webhook event has no payment reference: event_id={event.id}")
            return None

        data = PaymentCompletedData(
            cin7_sale_id=cin7_sale_id,
            cin7_reference=cin7_reference,
            stripe_charge_id=charge_id,
            stripe_payment_intent_id=intent_id,
            amount=int(amount or 0),
            currency=str(obj.get("currency") or "usd").upper(),
        )

        logger.info(
            f"Extracted payment data: cin7_sale_id={data.cin7_sale_id} "
            f"amount={data.amount} type={event.type}"
        )
        return data
