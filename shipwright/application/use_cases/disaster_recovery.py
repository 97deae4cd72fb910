"""
Disaster Recovery Use Case

Architectural Intent:
- Out-of-band restore from an explicit backup, independent of rollout
  sequencing and of the host state machine
- The supplied backup is validated for every target before anything is
  touched; a missing or malformed archive fails with ConfigurationError
- Health is a single go/no-go at the end, not gated per step
- One host failing, for any reason, never stops the others; every target
  ends with a HostRecovery

Flow (per host):
1. Stop service (failure tolerated, the service may already be down)
2. Pre-recovery safety snapshot (failure tolerated and reported)
3. Wipe and restore the artifact directory from the backup
4. Reinstall dependencies, start, wait for the port
5. Health Gate, then notify the outcome
"""

from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Optional

from shipwright.application.dtos.deployment_dtos import (
    HostRecovery,
    RecoveryRequest,
    RecoveryResponse,
)
from shipwright.application.orchestration.backup_manager import BackupManager
from shipwright.application.orchestration.group_lock import GroupLock
from shipwright.application.orchestration.health_gate import HealthGate
from shipwright.application.orchestration.service_control import ServiceControl
from shipwright.domain.entities.backup import BackupKind
from shipwright.domain.entities.fleet import Host
from shipwright.domain.entities.policy import RolloutPolicy
from shipwright.domain.errors import (
    BackupError,
    ConfigurationError,
    ConnectivityError,
    ShipwrightError,
    describe,
)
from shipwright.domain.ports.best_effort import BestEffortLoadBalancer, BestEffortNotifier
from shipwright.domain.ports.deployment_repository_port import DeploymentRepositoryPort
from shipwright.domain.ports.inventory_port import InventoryPort
from shipwright.domain.services.target_resolver import TargetResolver

logger = logging.getLogger(__name__)


class DisasterRecovery:
    def __init__(
        self,
        inventory: InventoryPort,
        backup_manager: BackupManager,
        health_gate: HealthGate,
        notifier: BestEffortNotifier,
        load_balancer: Optional[BestEffortLoadBalancer] = None,
        group_lock: Optional[GroupLock] = None,
        repository: Optional[DeploymentRepositoryPort] = None,
        resolver: Optional[TargetResolver] = None,
    ) -> None:
        self.inventory = inventory
        self.backup_manager = backup_manager
        self.service_control: ServiceControl = backup_manager.service_control
        self.health_gate = health_gate
        self.notifier = notifier
        self.load_balancer = load_balancer or BestEffortLoadBalancer()
        self.group_lock = group_lock or GroupLock()
        self.repository = repository
        self.resolver = resolver or TargetResolver()

    def _targets(self, request: RecoveryRequest) -> list[Host]:
        hosts = self.resolver.resolve(self.inventory.load(), request.group)
        if not request.hosts:
            return hosts
        by_name = {h.name: h for h in hosts}
        unknown = [name for name in request.hosts if name not in by_name]
        if unknown:
            raise ConfigurationError(
                f"hosts {', '.join(unknown)} are not members of group {request.group}"
            )
        return [by_name[name] for name in request.hosts]

    def _archive(self, request: RecoveryRequest) -> Path:
        if request.backup_path:
            return Path(request.backup_path)
        backup = self.backup_manager.store.get(request.backup_id)
        if backup is None:
            raise ConfigurationError(f"backup {request.backup_id} is not in the store")
        try:
            return self.backup_manager.store.read(backup.backup_id)
        except KeyError as e:
            raise ConfigurationError(
                f"backup {request.backup_id} is catalogued but its archive is missing"
            ) from e

    async def execute(self, request: RecoveryRequest) -> RecoveryResponse:
        hosts = self._targets(request)
        archive = self._archive(request)
        for host in hosts:
            self.backup_manager.validate_archive(archive, host)

        logger.warning(
            "Disaster recovery of %s on %d host(s) from %s",
            request.group,
            len(hosts),
            archive,
        )
        semaphore = asyncio.Semaphore(request.policy.max_concurrency)

        async def guarded(host: Host) -> HostRecovery:
            async with semaphore:
                try:
                    return await self._recover(host, archive, request.policy)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.exception("%s: disaster recovery aborted", host.name)
                    return self._failed(host, describe(e))

        names = [h.name for h in hosts]
        async with self.group_lock.hold(request.group, "disaster recovery", hosts=names):
            results = tuple(await asyncio.gather(*(guarded(h) for h in hosts)))

        failed = [r.host for r in results if not r.success]
        if failed:
            message = f"Disaster recovery failed on {', '.join(failed)}"
        else:
            message = f"Disaster recovery of {request.group} completed from {archive.name}"
        await self.notifier.notify(
            "critical" if failed else "info",
            message,
            tuple(r.host for r in results),
        )
        return RecoveryResponse(success=not failed, hosts=results, message=message)

    async def _recover(self, host: Host, archive: Path, policy: RolloutPolicy) -> HostRecovery:
        await self.load_balancer.deregister(host.name)
        try:
            await self.service_control.stop(host, policy.command_timeout)
        except ConnectivityError as e:
            return self._failed(host, f"unreachable: {e}")
        except ShipwrightError as e:
            logger.warning("%s: stop failed, continuing: %s", host.name, e)

        safety_id = None
        try:
            safety = await self.backup_manager.create_backup(
                host, kind=BackupKind.PRE_RECOVERY, policy=policy
            )
            safety_id = safety.backup_id
        except (BackupError, ConnectivityError) as e:
            logger.warning("%s: pre-recovery snapshot failed, continuing: %s", host.name, e)

        try:
            await self.backup_manager.replace_artifact(host, archive, policy)
            await self.service_control.install(host, policy.command_timeout)
            await self.service_control.start(host, policy.command_timeout)
            await self.service_control.wait_for_port(host, policy.start_timeout)
        except (ShipwrightError, OSError) as e:
            return self._failed(host, describe(e), safety_id)

        gate = self.health_gate.with_budget(policy.health_retries, policy.health_retry_delay)
        result = await gate.check(host, timeout=policy.probe_timeout)
        if not result.healthy:
            return self._failed(
                host,
                f"unhealthy after recovery ({result.attempts} attempts)",
                safety_id,
                result.attempts,
            )

        await self.load_balancer.register(host.name)
        if self.repository is not None:
            self.repository.update_host_status(host.name, "recovered", result.status.value)
        logger.info("%s: recovered (pre-recovery backup %s)", host.name, safety_id)
        return HostRecovery(
            host=host.name,
            success=True,
            message="recovered",
            safety_backup_id=safety_id,
            health_attempts=result.attempts,
        )

    def _failed(
        self,
        host: Host,
        message: str,
        safety_id: Optional[str] = None,
        attempts: int = 0,
    ) -> HostRecovery:
        logger.error("%s: disaster recovery failed: %s", host.name, message)
        if self.repository is not None:
            self.repository.update_host_status(host.name, "unhealthy", "unhealthy")
        return HostRecovery(
            host=host.name,
            success=False,
            message=message,
            safety_backup_id=safety_id,
            health_attempts=attempts,
        )
