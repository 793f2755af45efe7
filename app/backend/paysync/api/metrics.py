"""Metrics endpoints (Prometheus text and JSON)."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from paysync.core.metrics import MetricsCollector, get_metrics_collector

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(
    metrics: Annotated[MetricsCollector, Depends(get_metrics_collector)],
) -> str:
    return metrics.prometheus_text()


@router.get("/api/metrics")
async def json_metrics(
    metrics: Annotated[MetricsCollector, Depends(get_metrics_collector)],
) -> dict[str, Any]:
    return metrics.snapshot()
