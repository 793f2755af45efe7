import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paysync.core.config import Settings, get_settings
from paysync.core.exceptions import UnauthorizedError
from paysync.core.metrics import MetricsCollector, get_metrics_collector
from paysync.db.session import get_db, get_session_factory
from paysync.services.admin_service import AdminService
from paysync.services.alerting_service import AlertingService
from paysync.services.cin7.cin7_service import Cin7Service
from paysync.services.payments.payment_poster import PaymentPoster
from paysync.services.payments.webhook_processor import WebhookProcessor
from paysync.services.stripe.stripe_service import StripeService

logger = logging.getLogger(__name__)


async def require_admin_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    x_admin_token: Annotated[str | None, Header(alias="X-Admin-Token")] = None,
) -> None:
    """Reject admin requests whose token is missing, wrong, or not configured server-side."""
    expected = settings.ADMIN_TOKEN.get_secret_value() if settings.ADMIN_TOKEN else ""

    if not expected or not x_admin_token or not secrets.compare_digest(
        x_admin_token.encode(), expected.encode()
    ):
        logger.warning(
            f"Unauthorized admin access attempt: path={request.url.path} method={request.method}"
        )
        raise UnauthorizedError("Unauthorized")


def get_cin7_service(
    settings: Annotated[Settings, Depends(get_settings)],
    metrics: Annotated[MetricsCollector, Depends(get_metrics_collector)],
) -> Cin7Service:
    return Cin7Service.from_settings(settings, metrics)


def get_stripe_service(
    settings: Annotated[Settings, Depends(get_settings)],
    metrics: Annotated[MetricsCollector, Depends(get_metrics_collector)],
) -> StripeService:
    return StripeService.from_settings(settings, metrics)


def get_alerting_service(settings: Annotated[Settings, Depends(get_settings)]) -> AlertingService:
    return AlertingService(settings)


def get_webhook_processor(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    cin7: Annotated[Cin7Service, Depends(get_cin7_service)],
    metrics: Annotated[MetricsCollector, Depends(get_metrics_collector)],
    alerting: Annotated[AlertingService, Depends(get_alerting_service)],
) -> WebhookProcessor:
    return WebhookProcessor(session_factory, cin7, metrics, alerting)


def get_admin_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cin7: Annotated[Cin7Service, Depends(get_cin7_service)],
    metrics: Annotated[MetricsCollector, Depends(get_metrics_collector)],
) -> AdminService:
    return AdminService(db, PaymentPoster(cin7, metrics))
