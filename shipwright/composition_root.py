"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the Shipwright application
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module (except tests)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from ShipwrightConfig
- Optional integrations (load balancer, webhook, e-mail) are only wired when
  configured; otherwise null/log adapters are used
"""

import logging
from dataclasses import dataclass
from typing import Optional

from shipwright.application.orchestration.backup_manager import BackupManager
from shipwright.application.orchestration.group_lock import GroupLock
from shipwright.application.orchestration.health_gate import HealthGate
from shipwright.application.orchestration.host_executor import HostDeploymentExecutor
from shipwright.application.orchestration.service_control import ServiceControl
from shipwright.application.use_cases.disaster_recovery import DisasterRecovery
from shipwright.application.use_cases.monitor_fleet import MonitorFleet
from shipwright.application.use_cases.run_rollout import RunRollout
from shipwright.application.use_cases.sweep_retention import SweepRetention
from shipwright.domain.errors import ConfigurationError
from shipwright.domain.ports.best_effort import BestEffortLoadBalancer, BestEffortNotifier
from shipwright.infrastructure.adapters.email_notifier import EmailNotifier
from shipwright.infrastructure.adapters.fabric_adapter import FabricAdapter
from shipwright.infrastructure.adapters.filesystem_backup_store import FilesystemBackupStore
from shipwright.infrastructure.adapters.http_health_probe import HttpHealthProbe
from shipwright.infrastructure.adapters.http_load_balancer import HttpLoadBalancer
from shipwright.infrastructure.adapters.local_executor import LocalExecutor
from shipwright.infrastructure.adapters.logging_notifier import FanOutNotifier, LoggingNotifier
from shipwright.infrastructure.adapters.routing_executor import RoutingExecutor
from shipwright.infrastructure.adapters.webhook_notifier import WebhookNotifier
from shipwright.infrastructure.config import NotificationsConfig, ShipwrightConfig
from shipwright.infrastructure.inventory import IniInventory
from shipwright.infrastructure.repositories.sqlite_repository import SQLiteRepository

logger = logging.getLogger(__name__)


@dataclass
class ShipwrightContainer:
    """DI container holding all wired dependencies."""

    config: ShipwrightConfig
    repository: SQLiteRepository
    inventory: IniInventory
    backup_store: FilesystemBackupStore
    executor: RoutingExecutor
    load_balancer: BestEffortLoadBalancer
    notifier: BestEffortNotifier
    backup_manager: BackupManager
    run_rollout: RunRollout
    disaster_recovery: DisasterRecovery
    sweep_retention: SweepRetention
    monitor_fleet: MonitorFleet

    def close(self) -> None:
        self.repository.close()


def _email_channels(notifications: NotificationsConfig) -> list[EmailNotifier]:
    if not notifications.email_enabled:
        return []
    if not notifications.email_host or not notifications.email_recipients:
        logger.warning("E-mail notifications enabled but email_host or email_to is empty; skipping")
        return []
    try:
        return [
            EmailNotifier(
                notifications.email_host,
                notifications.email_recipients,
                smtp_port=notifications.email_port,
                sender=notifications.email_from,
                username=notifications.email_username,
                password=notifications.email_password,
                min_severity=notifications.email_min_severity,
                timeout=notifications.timeout,
            )
        ]
    except ValueError as e:
        raise ConfigurationError(f"Invalid e-mail notification settings: {e}") from e


def create_container(config: Optional[ShipwrightConfig] = None) -> ShipwrightContainer:
    """Create and wire all dependencies."""
    config = config or ShipwrightConfig()

    email_channels = _email_channels(config.notifications)
    repository = SQLiteRepository(config.db_path)
    repository.connect()

    inventory = IniInventory(config.inventory.path)
    backup_store = FilesystemBackupStore(config.backup.root, repository)
    executor = RoutingExecutor(
        ssh=FabricAdapter(connect_timeout=config.ssh.connect_timeout),
        local=LocalExecutor(),
    )
    service_control = ServiceControl(executor)

    lb_port = (
        HttpLoadBalancer(config.loadbalancer.url, timeout=config.loadbalancer.timeout)
        if config.loadbalancer.url
        else None
    )
    load_balancer = BestEffortLoadBalancer(lb_port, timeout=config.loadbalancer.timeout)

    channels = [LoggingNotifier()]
    if config.notifications.webhook_url:
        channels.append(
            WebhookNotifier(
                config.notifications.webhook_url, timeout=config.notifications.timeout
            )
        )
    channels.extend(email_channels)
    notifier = BestEffortNotifier(
        FanOutNotifier(*channels), timeout=config.notifications.timeout
    )

    group_lock = GroupLock(repository)
    health_gate = HealthGate(
        HttpHealthProbe(),
        retries=config.rollout.health_retries,
        delay=config.rollout.health_retry_delay,
    )
    backup_manager = BackupManager(executor, backup_store, service_control)
    host_executor = HostDeploymentExecutor(executor, load_balancer, service_control)

    run_rollout = RunRollout(
        inventory,
        backup_manager,
        host_executor,
        health_gate,
        notifier,
        group_lock=group_lock,
        repository=repository,
    )
    disaster_recovery = DisasterRecovery(
        inventory,
        backup_manager,
        health_gate,
        notifier,
        load_balancer=load_balancer,
        group_lock=group_lock,
        repository=repository,
    )
    sweep_retention = SweepRetention(backup_manager, inventory, group_lock)
    monitor_fleet = MonitorFleet(inventory, service_control, health_gate)

    return ShipwrightContainer(
        config=config,
        repository=repository,
        inventory=inventory,
        backup_store=backup_store,
        executor=executor,
        load_balancer=load_balancer,
        notifier=notifier,
        backup_manager=backup_manager,
        run_rollout=run_rollout,
        disaster_recovery=disaster_recovery,
        sweep_retention=sweep_retention,
        monitor_fleet=monitor_fleet,
    )
