"""
Rollout & Retention Policy Module

Architectural Intent:
- RolloutPolicy is captured once when a rollout starts and never mutated
- All timing knobs (retries, delays, timeouts) live here so every remote
  step has an explicit bound
- RetentionPolicy governs backup lifetime; the newest backup per host is
  always kept regardless of age

Design Decisions:
- Health retries use a fixed delay, no backoff
- Rollback verification reuses the same retry budget as the update check
- What happens after a failed rollback verification is a policy knob
  (RollbackEscalation) instead of hard-coded behaviour
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum


class Strategy(Enum):
    FULL_BATCH = "full-batch"
    SERIAL = "serial"
    CANARY = "canary"


class RollbackEscalation(Enum):
    ESCALATE = "escalate"
    RETRY_ONCE = "retry-once"


@dataclass(frozen=True)
class RolloutPolicy:
    strategy: Strategy = Strategy.SERIAL
    canary_size: int = 1
    max_concurrency: int = 5
    health_retries: int = 10
    health_retry_delay: float = 30.0
    probe_timeout: float = 10.0
    rollback_on_failure: bool = True
    rollback_escalation: RollbackEscalation = RollbackEscalation.ESCALATE
    drain_timeout: float = 30.0
    start_timeout: float = 60.0
    command_timeout: float = 300.0
    transfer_timeout: float = 300.0
    sweep_after_rollout: bool = True

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.health_retries < 1:
            raise ValueError("health_retries must be >= 1")
        if self.canary_size < 1:
            raise ValueError("canary_size must be >= 1")
        for name in (
            "health_retry_delay",
            "drain_timeout",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        for name in (
            "probe_timeout",
            "start_timeout",
            "command_timeout",
            "transfer_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    @property
    def concurrency(self) -> int:
        """Hosts allowed in flight at once for the main wave."""
        if self.strategy == Strategy.SERIAL:
            return 1
        return self.max_concurrency


@dataclass(frozen=True)
class RetentionPolicy:
    max_age: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        if self.max_age < timedelta(0):
            raise ValueError("max_age cannot be negative")

    @classmethod
    def days(cls, n: float) -> "RetentionPolicy":
        return cls(max_age=timedelta(days=n))
