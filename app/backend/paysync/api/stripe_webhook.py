"""Stripe webhook endpoint for payment completion events."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request

from paysync.core.config import get_settings
from paysync.core.dependencies import get_stripe_service, get_webhook_processor
from paysync.core.exceptions import MissingSignatureError
from paysync.core.rate_limit import limiter
from paysync.schemas.webhook import WebhookResponse
from paysync.services.payments.webhook_processor import IngestResult, WebhookProcessor
from paysync.services.stripe.stripe_service import StripeService

router = APIRouter(prefix="/api/webhooks/stripe", tags=["stripe-webhooks"])
logger = logging.getLogger(__name__)


@router.post("", response_model=WebhookResponse, response_model_exclude_none=True)
@limiter.limit(get_settings().RATE_LIMIT_WEBHOOK)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_service: Annotated[StripeService, Depends(get_stripe_service)],
    processor: Annotated[WebhookProcessor, Depends(get_webhook_processor)],
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookResponse:
    """
    Receive a signed Stripe event.

    The event is recorded before the response is sent, and the response goes
    out before any payment side effect. Stripe retries anything that is not a
    2xx, so redeliveries of a recorded event are acknowledged as duplicates.
    """
    if not stripe_signature:
        logger.warning("Webhook signature header missing")
        raise MissingSignatureError("Missing Stripe-Signature header")

    payload = await request.body()
    event = stripe_service.verify_webhook(payload, stripe_signature)

    logger.info(f"Webhook event received: event_id={event.id} type={event.type}")

    if await processor.ingest(event) is IngestResult.DUPLICATE:
        return WebhookResponse(already_processed=True)

    background_tasks.add_task(processor.process_in_background, event.id)
    return WebhookResponse()
