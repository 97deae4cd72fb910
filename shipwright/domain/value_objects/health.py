from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Optional


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HealthCheckResult:
    """
    Value Object: outcome of one Health Gate run against a host.

    `attempts` is the attempt number that decided the classification (the
    first 2xx, or the last attempt of an exhausted budget).
    """
    host: str
    status: HealthStatus
    attempts: int
    latency: float
    status_code: Optional[int] = None
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def __str__(self) -> str:
        detail = self.status_code if self.status_code is not None else self.error
        return (
            f"{self.host}: {self.status.value} after {self.attempts} attempt(s)"
            f" ({detail}, {self.latency:.2f}s)"
        )
