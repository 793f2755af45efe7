"""Stripe webhook payloads normalized at the API boundary."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: dict[str, Any] = Field(default_factory=dict)


class StripeEvent(BaseModel):
    """The envelope of a verified Stripe event."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    created: int | None = None
    livemode: bool = False
    data: StripeEventData = Field(default_factory=StripeEventData)


class PaymentCompletedData(BaseModel):
    """Sale linkage and amounts extracted from a payment success event."""

    cin7_sale_id: str
    cin7_reference: str
    stripe_charge_id: str | None = None
    stripe_payment_intent_id: str | None = None
    amount: int
    currency: str

    @property
    def payment_ref(self) -> str:
        """Posting key: the payment intent id, falling back to the charge id."""
        ref = self.stripe_payment_intent_id or self.stripe_charge_id
        if not ref:
            raise ValueError("Payment data carries neither payment intent nor charge id")
        return ref
