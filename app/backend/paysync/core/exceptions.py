"""Service-layer exceptions with a stable HTTP error shape."""

from typing import Any


class PaySyncError(Exception):
    """Base error carrying an error code, HTTP status and optional context.

    ``context`` is merged into the JSON error body, so it must only contain
    values that are safe to echo to the caller (ids, current state flags).
    """

    code = "error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.context)
        return body


class ValidationError(PaySyncError):
    code = "validation_error"
    status_code = 400


class UnauthorizedError(PaySyncError):
    code = "unauthorized"
    status_code = 401


class NotFoundError(PaySyncError):
    code = "not_found"
    status_code = 404


class ConflictError(PaySyncError):
    """Raised when the target is already in a terminal state and force was not given."""

    code = "conflict"
    status_code = 409


class NotConfiguredError(PaySyncError):
    code = "not_configured"
    status_code = 503


class UpstreamError(PaySyncError):
    """An outbound call to Cin7 or Stripe failed."""

    code = "upstream_error"
    status_code = 502


class Cin7APIError(UpstreamError):
    """Raised by Cin7Service when the API rejects a call or is unreachable."""

    def __init__(self, message: str, status_code: int | None = None, response_body: Any = None):
        super().__init__(message, details=message)
        self.upstream_status = status_code
        self.response_body = response_body


class StripeAPIError(UpstreamError):
    """Raised by StripeService when a Stripe call fails."""

    pass


class InvalidSignatureError(PaySyncError):
    """Webhook body could not be authenticated against the shared secret."""

    code = "invalid_signature"
    status_code = 400


class MissingSignatureError(PaySyncError):
    code = "missing_signature"
    status_code = 400


class WebhookNotConfiguredError(NotConfiguredError):
    code = "webhook_not_configured"
