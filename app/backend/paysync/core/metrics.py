"""In-process counters and response-time averages for the sync service."""

import logging
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Any, Literal

logger = logging.getLogger(__name__)

METRIC_PREFIX = "paysync"

Counter = Literal[
    "webhooks_received",
    "webhooks_processed",
    "webhooks_failed",
    "payments_created",
    "payments_posted",
    "payments_failed",
    "cin7_api_calls",
    "cin7_api_errors",
    "stripe_api_calls",
    "stripe_api_errors",
    "worker_cycles",
    "worker_errors",
    "database_errors",
]

TimedEndpoint = Literal["cin7", "stripe", "webhook"]

COUNTER_HELP: dict[str, str] = {
    "webhooks_received": "Total webhook events received from Stripe",
    "webhooks_processed": "Total webhook events successfully processed",
    "webhooks_failed": "Total webhook events that failed processing",
    "payments_created": "Total Stripe payment links created",
    "payments_posted": "Total payments successfully posted to Cin7",
    "payments_failed": "Total payments that failed to post to Cin7",
    "cin7_api_calls": "Total Cin7 API calls",
    "cin7_api_errors": "Total Cin7 API errors",
    "stripe_api_calls": "Total Stripe API calls",
    "stripe_api_errors": "Total Stripe API errors",
    "worker_cycles": "Total worker poll cycles",
    "worker_errors": "Total worker cycle errors",
    "database_errors": "Total database operation errors",
}


@dataclass
class ResponseTimes:
    cin7_avg_ms: float = 0.0
    cin7_count: int = 0
    stripe_avg_ms: float = 0.0
    stripe_count: int = 0
    webhook_avg_ms: float = 0.0
    webhook_count: int = 0


@dataclass
class Metrics:
    webhooks_received: int = 0
    webhooks_processed: int = 0
    webhooks_failed: int = 0
    payments_created: int = 0
    payments_posted: int = 0
    payments_failed: int = 0
    cin7_api_calls: int = 0
    cin7_api_errors: int = 0
    stripe_api_calls: int = 0
    stripe_api_errors: int = 0
    worker_cycles: int = 0
    worker_errors: int = 0
    database_errors: int = 0
    response_times: ResponseTimes = field(default_factory=ResponseTimes)


class MetricsCollector:
    """Collects counters and running-average response times."""

    def __init__(self) -> None:
        self._metrics = Metrics()

    def increment(self, metric: Counter) -> None:
        value = getattr(self._metrics, metric) + 1
        setattr(self._metrics, metric, value)
        logger.debug("Metric incremented: %s=%s", metric, value)

    def record_time(self, endpoint: TimedEndpoint, duration_ms: float) -> None:
        rt = self._metrics.response_times
        avg_attr = f"{endpoint}_avg_ms"
        count_attr = f"{endpoint}_count"
        count = getattr(rt, count_attr)
        avg = (getattr(rt, avg_attr) * count + duration_ms) / (count + 1)
        setattr(rt, avg_attr, avg)
        setattr(rt, count_attr, count + 1)

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-serializable copy of the current metrics."""
        return asdict(self._metrics)

    def prometheus_text(self) -> str:
        """Render metrics in the Prometheus text exposition format."""
        lines: list[str] = []
        for name, help_text in COUNTER_HELP.items():
            metric = f"{METRIC_PREFIX}_{name}"
            lines.extend(
                [
                    f"# HELP {metric} {help_text}",
                    f"# TYPE {metric} counter",
                    f"{metric} {getattr(self._metrics, name)}",
                    "",
                ]
            )

        rt = self._metrics.response_times
        gauges = (
            ("cin7_response_time_avg", "Average Cin7 API response time in milliseconds", rt.cin7_avg_ms),
            ("stripe_response_time_avg", "Average Stripe API response time in milliseconds", rt.stripe_avg_ms),
            ("webhook_response_time_avg", "Average webhook processing time in milliseconds", rt.webhook_avg_ms),
        )
        for name, help_text, value in gauges:
            metric = f"{METRIC_PREFIX}_{name}"
            lines.extend(
                [
                    f"# HELP {metric} {help_text}",
                    f"# TYPE {metric} gauge",
                    f"{metric} {round(value)}",
                    "",
                ]
            )

        return "\n".join(lines)

    def reset(self) -> None:
        self._metrics = Metrics()
        logger.info("Metrics reset")


@lru_cache
def get_metrics_collector() -> MetricsCollector:
    """Return the process-wide metrics collector."""
    return MetricsCollector()
