"""
Logging Notification Adapter

Architectural Intent:
- Default NotificationPort: writes events to the shipwright log at a level
  matching their severity
- Keeps the last notifications in memory for the CLI summary and tests
"""

import logging
from collections import deque

from shipwright.domain.ports.notification_port import Notification

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "critical": logging.CRITICAL,
}


class LoggingNotifier:
    def __init__(self, history: int = 100) -> None:
        self.sent: deque[Notification] = deque(maxlen=history)

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.log(
            _LEVELS.get(notification.severity, logging.INFO),
            "NOTIFY %s%s [hosts=%s]",
            f"({notification.deployment_id}) " if notification.deployment_id else "",
            notification.message,
            ",".join(notification.hosts) or "-",
        )


class FanOutNotifier:
    """Delivers each notification to every channel; the first failure is raised after all were tried."""

    def __init__(self, *channels) -> None:
        self.channels = channels

    async def send(self, notification: Notification) -> None:
        first_error = None
        for channel in self.channels:
            try:
                await channel.send(notification)
            except Exception as e:
                logger.warning("Notification channel %s failed: %s", type(channel).__name__, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
