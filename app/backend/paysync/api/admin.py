"""Admin API for replays, retries, reconciliation and key maintenance."""

import logging
from datetime import UTC, date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from paysync.core.dependencies import get_admin_service, get_webhook_processor, require_admin_token
from paysync.schemas.admin import (
    AdminHealth,
    ExpiredKeyList,
    ExpiredKeyRead,
    KeyCleanupResponse,
    PaymentLinkStatusRequest,
    PaymentLinkStatusResponse,
    PaymentPostingRead,
    PaymentRetryRequest,
    PaymentRetryResponse,
    ReconciliationReport,
    UnpostedPaymentList,
    WebhookEventList,
    WebhookEventRead,
    WebhookProcessResponse,
    WebhookReplayRequest,
    WebhookReplayResponse,
)
from paysync.services.admin_service import MAX_PAGE_SIZE, AdminService
from paysync.services.payments.webhook_processor import WebhookProcessor

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)
logger = logging.getLogger(__name__)


@router.post("/webhooks/replay", response_model=WebhookReplayResponse)
async def replay_webhook(
    data: WebhookReplayRequest,
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> WebhookReplayResponse:
    """Mark a stored event unprocessed; ``force`` is required if it was processed."""
    return await service.replay_webhook(data.event_id, force=data.force)


@router.post("/webhooks/{event_id}/process", response_model=WebhookProcessResponse)
async def process_webhook(
    event_id: str,
    processor: Annotated[WebhookProcessor, Depends(get_webhook_processor)],
) -> WebhookProcessResponse:
    """Run the side-effect stage for a stored event now. Cin7 failures surface as 502."""
    logger.info(f"Admin webhook processing requested: event_id={event_id}")
    outcome = await processor.process_event(event_id)
    return WebhookProcessResponse(
        event_id=event_id,
        processed=True,
        outcome=outcome.value,
    )


@router.get("/webhooks/unprocessed", response_model=WebhookEventList)
async def list_unprocessed_webhooks(
    service: Annotated[AdminService, Depends(get_admin_service)],
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = MAX_PAGE_SIZE,
) -> WebhookEventList:
    events = await service.list_unprocessed_events(limit=limit)
    return WebhookEventList(
        count=len(events),
        events=[WebhookEventRead.model_validate(event) for event in events],
    )


@router.get("/payments/unposted", response_model=UnpostedPaymentList)
async def list_unposted_payments(
    service: Annotated[AdminService, Depends(get_admin_service)],
    limit: Annotated[int, Query(ge=1)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> UnpostedPaymentList:
    """Page through payments not yet posted to Cin7 (limit capped at 100)."""
    limit = min(limit, MAX_PAGE_SIZE)
    postings, total = await service.list_unposted(limit=limit, offset=offset)
    return UnpostedPaymentList(
        total=total,
        limit=limit,
        offset=offset,
        count=len(postings),
        payments=[PaymentPostingRead.model_validate(posting) for posting in postings],
    )


@router.post("/payments/retry", response_model=PaymentRetryResponse)
async def retry_payment(
    data: PaymentRetryRequest,
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> PaymentRetryResponse:
    return await service.retry_posting(data.payment_posting_id, force=data.force)


@router.get("/payments/reconcile", response_model=ReconciliationReport)
async def reconcile_payments(
    service: Annotated[AdminService, Depends(get_admin_service)],
    start_date: date | None = None,
    end_date: date | None = None,
) -> ReconciliationReport:
    """Counts Stripe success events against Cin7 postings; both dates are inclusive."""
    return await service.reconcile(start_date, end_date)


@router.post("/payment-links/status", response_model=PaymentLinkStatusResponse)
async def update_payment_link_status(
    data: PaymentLinkStatusRequest,
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> PaymentLinkStatusResponse:
    return await service.set_link_status(data.payment_link_id, data.status, data.reason)


@router.get("/idempotency-keys/expired", response_model=ExpiredKeyList)
async def list_expired_keys(
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> ExpiredKeyList:
    keys = await service.list_expired_keys()
    return ExpiredKeyList(
        expired_count=len(keys),
        keys=[ExpiredKeyRead.model_validate(key) for key in keys],
    )


@router.post("/idempotency-keys/cleanup", response_model=KeyCleanupResponse)
async def cleanup_expired_keys(
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> KeyCleanupResponse:
    deleted = await service.cleanup_expired_keys()
    return KeyCleanupResponse(deleted_count=deleted, message=f"{deleted} expired keys deleted")


@router.get("/health", response_model=AdminHealth)
async def admin_health() -> AdminHealth:
    return AdminHealth(timestamp=datetime.now(UTC))
