"""
Deployment DTOs

Architectural Intent:
- Immutable operator configuration captured once at the start of a rollout
  or recovery (use case boundaries)
- Input validation at the application boundary
- Decouples external representation from domain model
"""

from dataclasses import dataclass, field
from typing import Optional

from shipwright.domain.entities.deployment import Deployment, DeploymentResult
from shipwright.domain.entities.policy import RetentionPolicy, RolloutPolicy


@dataclass(frozen=True)
class RolloutRequest:
    group: str
    artifact: str
    policy: RolloutPolicy = field(default_factory=RolloutPolicy)
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not self.group:
            raise ValueError("group cannot be empty")
        if not self.artifact:
            raise ValueError("artifact cannot be empty")


@dataclass(frozen=True)
class RolloutPlan:
    group: str
    waves: tuple[tuple[str, ...], ...]
    concurrency: int

    @property
    def hosts(self) -> tuple[str, ...]:
        return tuple(h for wave in self.waves for h in wave)


@dataclass(frozen=True)
class RolloutResponse:
    plan: RolloutPlan
    deployment: Optional[Deployment] = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        if self.dry_run:
            return True
        return (
            self.deployment is not None
            and self.deployment.result == DeploymentResult.SUCCEEDED
        )


@dataclass(frozen=True)
class RecoveryRequest:
    """Exactly one of backup_path / backup_id names the backup to restore."""
    group: str
    hosts: tuple[str, ...] = ()
    backup_path: Optional[str] = None
    backup_id: Optional[str] = None
    policy: RolloutPolicy = field(default_factory=RolloutPolicy)

    def __post_init__(self) -> None:
        if not self.group:
            raise ValueError("group cannot be empty")
        if bool(self.backup_path) == bool(self.backup_id):
            raise ValueError("exactly one of backup_path or backup_id is required")


@dataclass(frozen=True)
class HostRecovery:
    host: str
    success: bool
    message: str
    safety_backup_id: Optional[str] = None
    health_attempts: int = 0


@dataclass(frozen=True)
class RecoveryResponse:
    success: bool
    hosts: tuple[HostRecovery, ...] = ()
    message: str = ""


DEFAULT_MONITOR_PATHS = ("/ready", "/live")


@dataclass(frozen=True)
class MonitorRequest:
    """Read-only status sweep. `paths` are checked after the host's own health path."""
    group: str
    paths: tuple[str, ...] = DEFAULT_MONITOR_PATHS
    max_concurrency: int = 5
    timeout: float = 5.0

    def __post_init__(self) -> None:
        if not self.group:
            raise ValueError("group cannot be empty")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        for path in self.paths:
            if not path.startswith("/"):
                raise ValueError(f"endpoint path must start with '/': {path}")


@dataclass(frozen=True)
class EndpointCheck:
    path: str
    healthy: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class HostMonitorReport:
    host: str
    service_state: str
    endpoints: tuple[EndpointCheck, ...] = ()

    @property
    def ok(self) -> bool:
        return self.service_state == "active" and all(e.healthy for e in self.endpoints)


@dataclass(frozen=True)
class MonitorResponse:
    group: str
    hosts: tuple[HostMonitorReport, ...] = ()

    @property
    def ok(self) -> bool:
        return all(h.ok for h in self.hosts)
