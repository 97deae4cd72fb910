"""
Deployment Repository Port

Architectural Intent:
- Persists finalized deployment records and the last known state of each
  host (lifecycle state, health, last successful deployment)
"""

from typing import Optional, Protocol, runtime_checkable
from shipwright.domain.entities.deployment import Deployment


@runtime_checkable
class DeploymentRepositoryPort(Protocol):
    def save_deployment(self, deployment: Deployment) -> None: ...

    def update_host_status(
        self,
        host: str,
        state: str,
        health: str,
        deployment_id: Optional[str] = None,
    ) -> None: ...
