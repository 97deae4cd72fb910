"""
Deployment Module

Architectural Intent:
- Deployment aggregate is the record of one rollout across a group
- All state changes produce new instances to ensure auditability
- Immutable once finalized: a finalized deployment rejects further changes
- The aggregate result is the most severe outcome observed

Result Rules:
- ABORTED: the rollout was cancelled or aborted (e.g. unreachable host
  under serial strategy)
- SUCCEEDED: every host Committed
- ROLLED_BACK: no host Committed and every touched host RolledBack
- PARTIALLY_FAILED: anything else
"""

from __future__ import annotations
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
import uuid

from shipwright.domain.entities.host_run import HostOutcome
from shipwright.domain.entities.policy import Strategy


class DeploymentResult(Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially-failed"
    ROLLED_BACK = "rolled-back"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self != DeploymentResult.RUNNING


def classify(outcomes: tuple[HostOutcome, ...], aborted: bool) -> DeploymentResult:
    if aborted:
        return DeploymentResult.ABORTED
    states = [o.state for o in outcomes]
    if states and all(s == "committed" for s in states):
        return DeploymentResult.SUCCEEDED
    touched = [s for s in states if s != "pending"]
    if touched and "committed" not in states and all(s == "rolled-back" for s in touched):
        return DeploymentResult.ROLLED_BACK
    return DeploymentResult.PARTIALLY_FAILED


class Deployment:
    __slots__ = (
        "_deployment_id",
        "_artifact",
        "_group",
        "_strategy",
        "_started_at",
        "_finished_at",
        "_outcomes",
        "_result",
        "_aborted_reason",
    )

    def __init__(
        self,
        artifact: str,
        group: str,
        strategy: Strategy,
        deployment_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
        outcomes: tuple[HostOutcome, ...] = (),
        result: DeploymentResult = DeploymentResult.RUNNING,
        aborted_reason: Optional[str] = None,
    ):
        if not artifact:
            raise ValueError("Deployment artifact cannot be empty")
        if not group:
            raise ValueError("Deployment group cannot be empty")
        self._deployment_id = deployment_id or uuid.uuid4().hex[:12]
        self._artifact = artifact
        self._group = group
        self._strategy = strategy
        self._started_at = started_at or datetime.now(UTC)
        self._finished_at = finished_at
        self._outcomes = tuple(outcomes)
        self._result = result
        self._aborted_reason = aborted_reason

    @property
    def deployment_id(self) -> str:
        return self._deployment_id

    @property
    def artifact(self) -> str:
        return self._artifact

    @property
    def group(self) -> str:
        return self._group

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def finished_at(self) -> Optional[datetime]:
        return self._finished_at

    @property
    def outcomes(self) -> tuple[HostOutcome, ...]:
        return self._outcomes

    @property
    def result(self) -> DeploymentResult:
        return self._result

    @property
    def aborted_reason(self) -> Optional[str]:
        return self._aborted_reason

    @property
    def is_finalized(self) -> bool:
        return self._result.is_terminal

    def outcome_for(self, host: str) -> Optional[HostOutcome]:
        for outcome in self._outcomes:
            if outcome.host == host:
                return outcome
        return None

    def hosts_in(self, state: str) -> list[str]:
        return [o.host for o in self._outcomes if o.state == state]

    def _copy(self, **changes) -> "Deployment":
        values = dict(
            artifact=self._artifact,
            group=self._group,
            strategy=self._strategy,
            deployment_id=self._deployment_id,
            started_at=self._started_at,
            finished_at=self._finished_at,
            outcomes=self._outcomes,
            result=self._result,
            aborted_reason=self._aborted_reason,
        )
        values.update(changes)
        return Deployment(**values)

    def record(self, outcome: HostOutcome) -> "Deployment":
        if self.is_finalized:
            raise ValueError("Deployment is finalized and cannot be modified")
        outcomes = [o for o in self._outcomes if o.host != outcome.host]
        index = next(
            (i for i, o in enumerate(self._outcomes) if o.host == outcome.host),
            len(outcomes),
        )
        outcomes.insert(index, outcome)
        return self._copy(outcomes=tuple(outcomes))

    def finalize(self, aborted_reason: Optional[str] = None) -> "Deployment":
        if self.is_finalized:
            raise ValueError("Deployment is already finalized")
        return self._copy(
            finished_at=datetime.now(UTC),
            result=classify(self._outcomes, aborted=aborted_reason is not None),
            aborted_reason=aborted_reason,
        )

    def to_dict(self) -> dict:
        return {
            "deployment_id": self._deployment_id,
            "artifact": self._artifact,
            "group": self._group,
            "strategy": self._strategy.value,
            "started_at": self._started_at.isoformat(),
            "finished_at": self._finished_at.isoformat() if self._finished_at else None,
            "result": self._result.value,
            "aborted_reason": self._aborted_reason,
            "hosts": [o.to_dict() for o in self._outcomes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Deployment":
        finished = data.get("finished_at")
        return cls(
            artifact=data["artifact"],
            group=data["group"],
            strategy=Strategy(data["strategy"]),
            deployment_id=data["deployment_id"],
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(finished) if finished else None,
            outcomes=tuple(HostOutcome.from_dict(h) for h in data.get("hosts", [])),
            result=DeploymentResult(data["result"]),
            aborted_reason=data.get("aborted_reason"),
        )

    def __repr__(self) -> str:
        return (
            f"Deployment(id={self._deployment_id}, group={self._group}, "
            f"strategy={self._strategy.value}, result={self._result.value}, "
            f"hosts={len(self._outcomes)})"
        )
