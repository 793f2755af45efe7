from paysync.db.models.idempotency_key import IdempotencyKey
from paysync.db.models.payment_posting import PaymentPosting
from paysync.db.models.sale_payment_link import PaymentLinkStatus, SalePaymentLink
from paysync.db.models.webhook_event import WebhookEvent

__all__ = [
    "IdempotencyKey",
    "PaymentLinkStatus",
    "PaymentPosting",
    "SalePaymentLink",
    "WebhookEvent",
]
