"""Response models for the Stripe webhook endpoint."""

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Acknowledgment returned to Stripe."""

    received: bool = True
    already_processed: bool | None = None
