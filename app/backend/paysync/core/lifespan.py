import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paysync.core.config import get_settings
from paysync.core.logging_config import configure_logging
from paysync.core.metrics import get_metrics_collector
from paysync.db.session import get_async_sessionmaker, get_engine
from paysync.services.alerting_service import AlertingService
from paysync.services.cin7.cin7_service import Cin7Service
from paysync.services.sales.discovery_worker import SaleDiscoveryWorker, WorkerConfig
from paysync.services.stripe.stripe_service import StripeService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the sale discovery worker with the app and shut everything down in order."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger.info(f"Starting paysync: environment={settings.ENVIRONMENT}")

    metrics = get_metrics_collector()
    worker = SaleDiscoveryWorker(
        config=WorkerConfig.from_settings(settings),
        session_factory=get_async_sessionmaker(),
        cin7=Cin7Service.from_settings(settings, metrics),
        stripe=StripeService.from_settings(settings, metrics),
        metrics=metrics,
        alerting=AlertingService(settings),
    )
    app.state.worker = worker
    worker.start()

    try:
        yield
    finally:
        await worker.stop()
        await get_engine().dispose()
        logger.info("paysync shutdown complete")
