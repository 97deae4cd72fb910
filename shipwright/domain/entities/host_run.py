"""
Host Run Entity

Architectural Intent:
- Tracks one host through one rollout: current state, transition history,
  the pre-update Backup handle, health results and the recorded cause
- Only the rollout controller and host executor mutate it, always through
  transition(), which enforces the state machine table
- Frozen into a HostOutcome when the deployment record is written
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional
import logging

from shipwright.domain.entities.backup import Backup
from shipwright.domain.entities.fleet import Host
from shipwright.domain.value_objects.health import HealthCheckResult
from shipwright.domain.value_objects.host_state import (
    HostState,
    Pending,
    check_transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostOutcome:
    host: str
    state: str
    cause: Optional[str] = None
    failed_step: Optional[str] = None
    backup_id: Optional[str] = None
    health_attempts: int = 0
    history: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "state": self.state,
            "cause": self.cause,
            "failed_step": self.failed_step,
            "backup_id": self.backup_id,
            "health_attempts": self.health_attempts,
            "history": [list(h) for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HostOutcome":
        return cls(
            host=data["host"],
            state=data["state"],
            cause=data.get("cause"),
            failed_step=data.get("failed_step"),
            backup_id=data.get("backup_id"),
            health_attempts=int(data.get("health_attempts", 0)),
            history=tuple(tuple(h) for h in data.get("history", [])),
        )


@dataclass
class HostRun:
    host: Host
    state: HostState = field(default_factory=Pending)
    backup: Optional[Backup] = None
    cause: Optional[str] = None
    failed_step: Optional[str] = None
    health: list[HealthCheckResult] = field(default_factory=list)
    history: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append((self.state.label, datetime.now(UTC).isoformat()))

    @property
    def name(self) -> str:
        return self.host.name

    def transition(self, target: HostState) -> None:
        check_transition(self.state, target)
        logger.debug("%s: %s -> %s", self.name, self.state, target)
        self.state = target
        self.history.append((target.label, datetime.now(UTC).isoformat()))

    def record_failure(self, cause: str, step: Optional[str] = None) -> None:
        """Keep the first failure as the cause; later ones only log."""
        if self.cause is None:
            self.cause = cause
            self.failed_step = step
        else:
            logger.debug("%s: additional failure %s", self.name, cause)

    def outcome(self) -> HostOutcome:
        return HostOutcome(
            host=self.name,
            state=self.state.label,
            cause=self.cause,
            failed_step=self.failed_step,
            backup_id=self.backup.backup_id if self.backup else None,
            health_attempts=sum(r.attempts for r in self.health),
            history=tuple(self.history),
        )
