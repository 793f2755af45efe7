from paysync.schemas.sale import Cin7Sale
from paysync.schemas.stripe_event import PaymentCompletedData, StripeEvent
from paysync.schemas.webhook import WebhookResponse

__all__ = [
    "Cin7Sale",
    "PaymentCompletedData",
    "StripeEvent",
    "WebhookResponse",
]
