from paysync.repositories.idempotency_key_repository import IdempotencyKeyRepository
from paysync.repositories.payment_posting_repository import PaymentPostingRepository
from paysync.repositories.sale_payment_link_repository import (
    PaymentLinkAlreadyExistsError,
    SalePaymentLinkRepository,
)
from paysync.repositories.webhook_event_repository import WebhookEventRepository

__all__ = [
    "IdempotencyKeyRepository",
    "PaymentLinkAlreadyExistsError",
    "PaymentPostingRepository",
    "SalePaymentLinkRepository",
    "WebhookEventRepository",
]
