"""
Application Orchestration Package

Architectural Intent:
- Building blocks of the per-host pipeline: service control, backup
  manager, health gate, host executor, group lock
"""

from shipwright.application.orchestration.backup_manager import (
    BackupManager,
    RestoreOutcome,
    SweepReport,
)
from shipwright.application.orchestration.group_lock import CancellationToken, GroupLock
from shipwright.application.orchestration.health_gate import HealthGate
from shipwright.application.orchestration.host_executor import HostDeploymentExecutor
from shipwright.application.orchestration.service_control import ServiceControl

__all__ = [
    "BackupManager",
    "RestoreOutcome",
    "SweepReport",
    "CancellationToken",
    "GroupLock",
    "HealthGate",
    "HostDeploymentExecutor",
    "ServiceControl",
]
