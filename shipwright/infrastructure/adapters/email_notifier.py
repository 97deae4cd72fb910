"""
Email Notification Adapter

Architectural Intent:
- Implements NotificationPort for SMTP e-mail to operators
- Uses stdlib smtplib and email.message for the mail layer
- Blocking SMTP work runs in a worker thread so a slow mail server never
  stalls the event loop; BestEffortNotifier bounds it with its timeout

Design Decisions:
- STARTTLS on the submission port (587) or when use_tls is set
- Notifications below min_severity are dropped, so a busy fleet can mail
  only warnings and critical events
- Raises on delivery failure like every other channel
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from shipwright.domain.ports.notification_port import SEVERITIES, Notification

logger = logging.getLogger(__name__)

SUBMISSION_PORT = 587


class EmailNotifier:
    """SMTP notification channel."""

    def __init__(
        self,
        smtp_host: str,
        recipients: list[str],
        smtp_port: int = SUBMISSION_PORT,
        sender: str = "shipwright@localhost",
        username: str = "",
        password: str = "",
        min_severity: str = "info",
        timeout: float = 10.0,
        use_tls: Optional[bool] = None,
    ) -> None:
        """Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            recipients: Addresses every notification is sent to
            smtp_port: SMTP server port (default 587 for STARTTLS)
            sender: From address
            username: SMTP login; empty skips authentication
            password: SMTP password
            min_severity: Lowest severity that is mailed (info, warning, critical)
            timeout: Socket timeout in seconds
            use_tls: Force STARTTLS on or off; None means "on port 587"
        """
        if not smtp_host:
            raise ValueError("smtp_host cannot be empty")
        if not recipients:
            raise ValueError("at least one recipient is required")
        if min_severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {min_severity!r}")
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._recipients = list(recipients)
        self._sender = sender
        self._username = username
        self._password = password
        self._min_rank = SEVERITIES.index(min_severity)
        self._timeout = timeout
        self._use_tls = smtp_port == SUBMISSION_PORT if use_tls is None else use_tls

    @property
    def recipients(self) -> list[str]:
        return list(self._recipients)

    def wants(self, notification: Notification) -> bool:
        return SEVERITIES.index(notification.severity) >= self._min_rank

    def build_message(self, notification: Notification) -> EmailMessage:
        message = EmailMessage()
        headline = notification.message.splitlines()[0] if notification.message else ""
        message["Subject"] = f"[{notification.severity.upper()}] Shipwright: {headline[:120]}"
        message["From"] = self._sender
        message["To"] = ", ".join(self._recipients)

        lines = [notification.message, ""]
        if notification.hosts:
            lines.append(f"Hosts: {', '.join(notification.hosts)}")
        if notification.deployment_id:
            lines.append(f"Deployment: {notification.deployment_id}")
        if notification.severity == "critical":
            lines += ["", "Please verify the application is functioning correctly."]
        message.set_content("\n".join(lines).rstrip() + "\n")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password)
            smtp.send_message(message)

    async def send(self, notification: Notification) -> None:
        if not self.wants(notification):
            logger.debug(
                "Email skipped for %s notification (minimum %s)",
                notification.severity,
                SEVERITIES[self._min_rank],
            )
            return
        await asyncio.to_thread(self._deliver, self.build_message(notification))
        logger.debug(
            "Email notification sent [severity=%s, deployment=%s, recipients=%s]",
            notification.severity,
            notification.deployment_id,
            ",".join(self._recipients),
        )
