"""Operator alerts for failures that need a human (Slack incoming webhook)."""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

from paysync.core.config import Settings

logger = logging.getLogger(__name__)


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


_SLACK_COLORS = {
    AlertSeverity.CRITICAL: "danger",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.INFO: "good",
}


class AlertingService:
    """Sends alerts to Slack when enabled; always logs them."""

    def __init__(self, settings: Settings):
        self.enabled = settings.ALERT_ENABLED
        self.channel = settings.ALERT_SLACK_CHANNEL
        self.webhook_url = (
            settings.ALERT_SLACK_WEBHOOK_URL.get_secret_value()
            if settings.ALERT_SLACK_WEBHOOK_URL
            else None
        )

    async def send_alert(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Log the alert and forward it to Slack.

        Delivery failures are logged, never raised: alerting must not break the
        code path that is reporting a failure.
        """
        if not self.enabled:
            logger.debug("Alerting disabled, skipping alert: %s", title)
            return

        logger.warning(
            "Alert triggered: severity=%s title=%s message=%s context=%s",
            severity.value,
            title,
            message,
            context,
        )

        if not self.webhook_url:
            return

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.webhook_url,
                    json=self._build_slack_payload(severity, title, message, context),
                    timeout=10.0,
                )
                response.raise_for_status()
            logger.info("Slack alert sent: %s", title)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Slack alert: {str(e)}")

    async def send_warning(self, title: str, message: str, context: dict[str, Any] | None = None) -> None:
        await self.send_alert(AlertSeverity.WARNING, title, message, context)

    async def send_critical(self, title: str, message: str, context: dict[str, Any] | None = None) -> None:
        await self.send_alert(AlertSeverity.CRITICAL, title, message, context)

    def _build_slack_payload(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        context: dict[str, Any] | None,
    ) -> dict[str, Any]:
        fields = [
            {"title": "Severity", "value": severity.value.upper(), "short": True},
            {"title": "Timestamp", "value": datetime.now(UTC).isoformat(), "short": True},
        ]
        for key, value in (context or {}).items():
            fields.append({"title": key, "value": str(value), "short": True})

        return {
            "channel": self.channel,
            "attachments": [
                {
                    "fallback": f"{severity.value.upper()}: {title}",
                    "color": _SLACK_COLORS[severity],
                    "title": title,
                    "text": message,
                    "fields": fields,
                }
            ],
        }
