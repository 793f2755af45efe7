"""Stripe service: payment links and webhook signature verification."""

import asyncio
import json
import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any, TypeVar

import stripe
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from paysync.core.config import Settings
from paysync.core.exceptions import (
    InvalidSignatureError,
    NotConfiguredError,
    StripeAPIError,
    WebhookNotConfiguredError,
)
from paysync.core.metrics import MetricsCollector
from paysync.schemas.stripe_event import StripeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentLinkResult(BaseModel):
    """The subset of a Stripe PaymentLink this service relies on."""

    id: str
    url: str
    active: bool = True
    metadata: dict[str, str] = {}


class StripeService:
    """Thin async wrapper around the (blocking) ``stripe`` library."""

    def __init__(
        self,
        api_key: str | None,
        webhook_secret: str | None,
        metrics: MetricsCollector,
        api_version: str | None = None,
        webhook_tolerance: int = 300,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.metrics = metrics
        self.api_version = api_version
        self.webhook_tolerance = webhook_tolerance

    @classmethod
    def from_settings(cls, settings: Settings, metrics: MetricsCollector) -> "StripeService":
        return cls(
            api_key=settings.STRIPE_API_KEY.get_secret_value() if settings.STRIPE_API_KEY else None,
            webhook_secret=(
                settings.STRIPE_WEBHOOK_SECRET.get_secret_value()
                if settings.STRIPE_WEBHOOK_SECRET
                else None
            ),
            metrics=metrics,
            api_version=settings.STRIPE_API_VERSION,
            webhook_tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )

    @property
    def webhooks_configured(self) -> bool:
        return bool(self.webhook_secret)

    async def _call(self, operation: str, fn: Callable[..., T], **kwargs: Any) -> T:
        """Run a blocking Stripe call off the event loop with metrics and error mapping."""
        if not self.api_key:
            raise NotConfiguredError("STRIPE_API_KEY is not configured")

        self.metrics.increment("stripe_api_calls")
        start = perf_counter()
        try:
            return await asyncio.to_thread(
                fn, api_key=self.api_key, stripe_version=self.api_version, **kwargs
            )
        except stripe.StripeError as e:
            self.metrics.increment("stripe_api_errors")
            logger.error(f"Stripe {operation} failed: {str(e)}")
            raise StripeAPIError(f"Stripe {operation} failed", details=str(e)) from e
        finally:
            self.metrics.record_time("stripe", (perf_counter() - start) * 1000)

    async def create_payment_link(
        self,
        cin7_sale_id: str,
        cin7_reference: str,
        amount: int,
        currency: str,
        description: str | None = None,
    ) -> PaymentLinkResult:
        """
        Create a single-item payment link for a sale.

        The sale linkage is stored on the link and on the resulting payment
        intent so charge and payment-intent events can be traced back.

        Args:
            cin7_sale_id: Cin7 sale id
            cin7_reference: Human-readable sale reference
            amount: Amount in minor units
            currency: ISO currency code
            description: Product name shown on the checkout page

        Returns:
            The created payment link
        """
        metadata = {"cin7_sale_id": cin7_sale_id, "cin7_reference": cin7_reference}
        logger.info(f"Creating Stripe Payment Link: cin7_sale_id={cin7_sale_id} amount={amount}")

        price = await self._call(
            "price create",
            stripe.Price.create,
            currency=currency.lower(),
            unit_amount=amount,
            product_data={"name": description or f"Sale #{cin7_reference}"},
            metadata=metadata,
            idempotency_key=f"price:{cin7_sale_id}:{amount}:{currency.lower()}",
        )

        link = await self._call(
            "payment link create",
            stripe.PaymentLink.create,
            line_items=[{"price": price.id, "quantity": 1}],
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            idempotency_key=f"payment-link:{cin7_sale_id}:{price.id}",
        )

        logger.info(f"Payment Link created: id={link.id} cin7_sale_id={cin7_sale_id}")
        return PaymentLinkResult(id=link.id, url=link.url, active=link.active, metadata=metadata)

    async def retrieve_payment_link(self, payment_link_id: str) -> PaymentLinkResult:
        logger.info(f"Retrieving Payment Link: {payment_link_id}")
        link = await self._call("payment link retrieve", stripe.PaymentLink.retrieve, id=payment_link_id)
        return PaymentLinkResult(
            id=link.id,
            url=link.url,
            active=link.active,
            metadata=dict(link.metadata or {}),
        )

    def verify_webhook(self, payload: bytes, signature: str) -> StripeEvent:
        """
        Authenticate a webhook body against the endpoint secret and parse it.

        Raises:
            WebhookNotConfiguredError: If no webhook secret is configured
            InvalidSignatureError: If the signature or body is invalid
        """
        if not self.webhook_secret:
            raise WebhookNotConfiguredError("STRIPE_WEBHOOK_SECRET is not configured")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, self.webhook_tolerance
            )
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Webhook signature verification failed: {str(e)}")
            raise InvalidSignatureError("Invalid webhook signature") from e

        try:
            event = StripeEvent.model_validate(json.loads(body))
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"Webhook payload is not a valid Stripe event: {str(e)}")
            raise InvalidSignatureError("Malformed webhook payload") from e

        logger.info(f"Webhook signature verified: event_id={event.id} type={event.type}")
        return event
