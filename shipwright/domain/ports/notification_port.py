"""
Notification Port

Architectural Intent:
- Abstract interface for the fire-and-forget event sink
- Decouples rollout/recovery flows from channels (webhook, log, email, ...)
- Callers only reach it through BestEffortNotifier: a notification failure
  never blocks or fails a rollout

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- One `send` method taking a Notification value object
- Severity is one of: info, warning, critical
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

SEVERITIES = ("info", "warning", "critical")


@dataclass(frozen=True)
class Notification:
    severity: str
    message: str
    hosts: tuple[str, ...] = ()
    deployment_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {self.severity!r}")

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "message": self.message,
            "hosts": list(self.hosts),
            "deployment_id": self.deployment_id,
        }


@runtime_checkable
class NotificationPort(Protocol):
    """Port for sending rollout events through external notification channels."""

    async def send(self, notification: Notification) -> None:
        """Deliver a notification. May raise; callers wrap it as best-effort."""
        ...
