"""
Host State Machine

Architectural Intent:
- Per-host lifecycle modelled as tagged variants, one frozen class per state
- Legal transitions declared in a single table so failure and rollback
  branches are exhaustive rather than scattered conditionals
- Failure states carry their recorded cause

Lifecycle:
    Pending -> Draining -> Updating -> Verifying -> Healthy -> Committed
                  |            |           |
                  +------------+-----------+--> Unhealthy -> RollingBack -> RolledBack
                                                   |              |
                                                   +--------------+--> Unhealthy(final)
    Pending -> Skipped   (unreachable, or backup failed: host never touched)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import ClassVar

from shipwright.domain.errors import InvalidTransitionError


@dataclass(frozen=True)
class HostState:
    label: ClassVar[str] = "unknown"

    @property
    def is_terminal(self) -> bool:
        return False

    @property
    def is_transient(self) -> bool:
        """True while the host is mid-pipeline (out of rotation or mutating)."""
        return not self.is_terminal

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class Pending(HostState):
    label: ClassVar[str] = "pending"

    @property
    def is_transient(self) -> bool:
        return False


@dataclass(frozen=True)
class Draining(HostState):
    label: ClassVar[str] = "draining"


@dataclass(frozen=True)
class Updating(HostState):
    label: ClassVar[str] = "updating"


@dataclass(frozen=True)
class Verifying(HostState):
    label: ClassVar[str] = "verifying"


@dataclass(frozen=True)
class Healthy(HostState):
    label: ClassVar[str] = "healthy"


@dataclass(frozen=True)
class Unhealthy(HostState):
    label: ClassVar[str] = "unhealthy"
    cause: str = ""
    final: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.final


@dataclass(frozen=True)
class RollingBack(HostState):
    label: ClassVar[str] = "rolling-back"
    attempt: int = 1


@dataclass(frozen=True)
class Committed(HostState):
    label: ClassVar[str] = "committed"

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class RolledBack(HostState):
    label: ClassVar[str] = "rolled-back"
    cause: str = ""

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class Skipped(HostState):
    label: ClassVar[str] = "skipped"
    cause: str = ""

    @property
    def is_terminal(self) -> bool:
        return True


_TRANSITIONS: dict[type, tuple[type, ...]] = {
    Pending: (Draining, Skipped),
    Draining: (Updating, Unhealthy),
    Updating: (Verifying, Unhealthy),
    Verifying: (Healthy, Unhealthy),
    Healthy: (Committed,),
    Unhealthy: (RollingBack, Unhealthy),
    RollingBack: (RolledBack, Unhealthy, RollingBack),
    Committed: (),
    RolledBack: (),
    Skipped: (),
}


def check_transition(current: HostState, target: HostState) -> None:
    """Raise InvalidTransitionError unless `current -> target` is legal."""
    if current.is_terminal:
        raise InvalidTransitionError(
            f"Cannot leave terminal state {current} for {target}"
        )
    allowed = _TRANSITIONS[type(current)]
    if type(target) not in allowed:
        raise InvalidTransitionError(f"Illegal transition {current} -> {target}")
    if isinstance(current, Unhealthy) and isinstance(target, Unhealthy) and not target.final:
        raise InvalidTransitionError("Unhealthy may only settle into a final Unhealthy")
    if isinstance(current, RollingBack) and isinstance(target, RollingBack):
        if target.attempt <= current.attempt:
            raise InvalidTransitionError("Rollback retry must increase the attempt number")
    if isinstance(current, RollingBack) and isinstance(target, Unhealthy) and not target.final:
        raise InvalidTransitionError("A failed rollback leaves the host in a final Unhealthy")
