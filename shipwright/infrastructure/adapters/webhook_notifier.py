"""
Webhook Notification Adapter

Architectural Intent:
- Implements NotificationPort for Slack-compatible incoming webhooks
- Formats events as a single attachment with severity-based color coding
- Raises on delivery failure; BestEffortNotifier keeps that from ever
  reaching a rollout
"""

import logging

import httpx

from shipwright.domain.ports.notification_port import Notification

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "critical": "#FF0000",  # Red
    "warning": "#FF6600",  # Orange
    "info": "#00CC00",  # Green
}


class WebhookNotifier:
    def __init__(self, webhook_url: str, timeout: float = 10.0) -> None:
        """Initialize webhook notifier.

        Args:
            webhook_url: Incoming webhook URL
            timeout: Per-request timeout in seconds
        """
        if not webhook_url:
            raise ValueError("webhook_url cannot be empty")
        self._webhook_url = webhook_url
        self._timeout = timeout

    def build_payload(self, notification: Notification) -> dict:
        fields = []
        if notification.hosts:
            fields.append(
                {"title": "Hosts", "value": ", ".join(notification.hosts), "short": False}
            )
        if notification.deployment_id:
            fields.append(
                {"title": "Deployment", "value": notification.deployment_id, "short": True}
            )
        return {
            "text": f"[{notification.severity.upper()}] {notification.message}",
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(notification.severity, "#808080"),
                    "fields": fields,
                }
            ],
        }

    async def send(self, notification: Notification) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                self._webhook_url, json=self.build_payload(notification)
            )
        response.raise_for_status()
        logger.debug(
            "Webhook notification sent [severity=%s, deployment=%s]",
            notification.severity,
            notification.deployment_id,
        )
