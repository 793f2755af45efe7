"""Pydantic schemas for the admin API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from paysync.db.models.sale_payment_link import PaymentLinkStatus


class WebhookReplayRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    force: bool = False


class WebhookReplayResponse(BaseModel):
    success: bool = True
    event_id: str
    previously_processed: bool
    processed: bool
    message: str


class WebhookEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: str
    event_type: str
    cin7_sale_id: str | None
    stripe_payment_intent_id: str | None
    stripe_charge_id: str | None
    amount: int | None
    currency: str | None
    processed: bool
    created_at: datetime
    processed_at: datetime | None


class WebhookEventList(BaseModel):
    count: int
    events: list[WebhookEventRead]


class WebhookProcessResponse(BaseModel):
    success: bool = True
    event_id: str
    processed: bool
    outcome: str


class PaymentPostingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    cin7_sale_id: str
    stripe_payment_intent_id: str
    stripe_charge_id: str | None
    amount: int
    currency: str
    posted_to_cin7: bool
    created_at: datetime
    posted_at: datetime | None


class UnpostedPaymentList(BaseModel):
    total: int
    limit: int
    offset: int
    count: int
    payments: list[PaymentPostingRead]


class PaymentRetryRequest(BaseModel):
    payment_posting_id: int
    force: bool = False


class PaymentRetryResponse(BaseModel):
    success: bool = True
    payment_posting_id: int
    cin7_sale_id: str
    amount: float
    currency: str
    message: str


class DateRange(BaseModel):
    start: str
    end: str


class ReconciliationReport(BaseModel):
    stripe_payments: int
    cin7_postings: int
    unposted: int
    reconciliation_rate: str
    date_range: DateRange


class PaymentLinkStatusRequest(BaseModel):
    payment_link_id: int
    status: PaymentLinkStatus
    reason: str | None = None


class PaymentLinkStatusResponse(BaseModel):
    success: bool = True
    payment_link_id: int
    cin7_sale_id: str
    old_status: str
    new_status: str
    reason: str
    message: str


class ExpiredKeyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    operation: str
    expires_at: datetime


class ExpiredKeyList(BaseModel):
    expired_count: int
    keys: list[ExpiredKeyRead]


class KeyCleanupResponse(BaseModel):
    success: bool = True
    deleted_count: int
    message: str


class AdminHealth(BaseModel):
    status: str = "ok"
    service: str = "admin-routes"
    timestamp: datetime
