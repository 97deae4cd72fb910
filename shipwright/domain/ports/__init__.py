"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from shipwright.domain.ports.remote_executor_port import RemoteExecutorPort, CommandResult
from shipwright.domain.ports.health_probe_port import HealthProbePort
from shipwright.domain.ports.load_balancer_port import LoadBalancerPort
from shipwright.domain.ports.backup_store_port import BackupStorePort
from shipwright.domain.ports.notification_port import NotificationPort, Notification
from shipwright.domain.ports.inventory_port import InventoryPort
from shipwright.domain.ports.deployment_repository_port import DeploymentRepositoryPort
from shipwright.domain.ports.lock_store_port import LockStorePort
from shipwright.domain.ports.best_effort import BestEffortLoadBalancer, BestEffortNotifier

__all__ = [
    "RemoteExecutorPort",
    "CommandResult",
    "HealthProbePort",
    "LoadBalancerPort",
    "BackupStorePort",
    "NotificationPort",
    "Notification",
    "InventoryPort",
    "DeploymentRepositoryPort",
    "LockStorePort",
    "BestEffortLoadBalancer",
    "BestEffortNotifier",
]
