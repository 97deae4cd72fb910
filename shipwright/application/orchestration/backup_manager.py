"""
Backup & Retention Manager

Architectural Intent:
- Snapshots a host's live artifact directory before any destructive step
- Restores a snapshot by full overwrite (extract to staging, then swap)
- Enforces age-based retention with an "always keep newest" floor
- Validates operator-supplied archives before disaster recovery touches
  anything

Ordering Guarantees:
- create_backup must succeed before a host is mutated; any failure raises
  BackupError and the host pipeline stops there (fail-closed)
- sweep_retention only runs once a deployment is terminal, and only over
  the hosts whose lock the caller holds
"""

from __future__ import annotations
import logging
import os
import posixpath
import tarfile
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Iterable, Optional

from shipwright.application.orchestration import commands
from shipwright.application.orchestration.service_control import ServiceControl
from shipwright.domain.entities.backup import Backup, BackupKind, new_backup_id
from shipwright.domain.entities.fleet import Host
from shipwright.domain.entities.policy import RetentionPolicy, RolloutPolicy
from shipwright.domain.errors import (
    BackupError,
    ConfigurationError,
    ConnectivityError,
    RetentionSweepError,
    RollbackFailure,
    ShipwrightError,
    StageError,
)
from shipwright.domain.ports.backup_store_port import BackupStorePort
from shipwright.domain.ports.remote_executor_port import RemoteExecutorPort
from shipwright.domain.services.retention import select_expired
from shipwright.domain.value_objects.host_step import HostStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreOutcome:
    host: str
    backup_id: str
    duration: float


@dataclass
class SweepReport:
    deleted: list[Backup] = field(default_factory=list)
    retained: int = 0
    errors: list[RetentionSweepError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class BackupManager:
    def __init__(
        self,
        remote_executor: RemoteExecutorPort,
        store: BackupStorePort,
        service_control: Optional[ServiceControl] = None,
    ) -> None:
        self.remote_executor = remote_executor
        self.store = store
        self.service_control = service_control or ServiceControl(remote_executor)

    # -- Snapshot ------------------------------------------------------------

    async def create_backup(
        self,
        host: Host,
        deployment_id: Optional[str] = None,
        kind: BackupKind = BackupKind.PRE_UPDATE,
        policy: Optional[RolloutPolicy] = None,
    ) -> Backup:
        policy = policy or RolloutPolicy()
        settings = host.settings
        remote_archive = posixpath.join(
            settings.remote_tmp_dir, f"shipwright-{new_backup_id()}.tar.gz"
        )
        fd, local_name = tempfile.mkstemp(prefix="shipwright-", suffix=".tar.gz")
        os.close(fd)
        local_archive = Path(local_name)

        try:
            await self.service_control.run_checked(
                host,
                commands.archive(settings.app_dir, remote_archive),
                policy.command_timeout,
                HostStep.BACKUP,
            )
            await self.remote_executor.download(
                host.node, remote_archive, str(local_archive), policy.transfer_timeout
            )
            if local_archive.stat().st_size == 0:
                raise BackupError("downloaded archive is empty", host=host.name)
            backup = self.store.write(host.name, local_archive, kind, deployment_id)
        except ConnectivityError:
            local_archive.unlink(missing_ok=True)
            raise
        except BackupError:
            local_archive.unlink(missing_ok=True)
            raise
        except (ShipwrightError, OSError) as e:
            local_archive.unlink(missing_ok=True)
            raise BackupError(f"backup of {settings.app_dir} failed: {e}", host=host.name) from e
        finally:
            await self._cleanup_remote(host, remote_archive, policy)

        logger.info("%s: created %s backup %s", host.name, kind.value, backup.backup_id)
        return backup

    # -- Restore -------------------------------------------------------------

    async def restore_backup(
        self, host: Host, backup: Backup, policy: Optional[RolloutPolicy] = None
    ) -> RestoreOutcome:
        """Stop service, swap in the backup's artifact directory, start service."""
        policy = policy or RolloutPolicy()
        if backup.host != host.name:
            raise RollbackFailure(
                f"backup {backup.backup_id} belongs to {backup.host}", host=host.name
            )
        started = time.monotonic()
        logger.warning("%s: restoring backup %s", host.name, backup.backup_id)
        try:
            archive = self.store.read(backup.backup_id)
        except KeyError as e:
            raise RollbackFailure(
                f"backup {backup.backup_id} missing from store", host=host.name
            ) from e

        try:
            await self.service_control.stop(host, policy.command_timeout)
        except ConnectivityError as e:
            raise RollbackFailure(f"restore failed: {e}", host=host.name) from e
        except ShipwrightError as e:
            logger.warning("%s: stop before restore failed, continuing: %s", host.name, e)

        try:
            await self.replace_artifact(host, archive, policy)
            await self.service_control.start(host, policy.command_timeout)
        except (ShipwrightError, OSError) as e:
            raise RollbackFailure(f"restore failed: {e}", host=host.name) from e

        return RestoreOutcome(
            host=host.name,
            backup_id=backup.backup_id,
            duration=time.monotonic() - started,
        )

    async def replace_artifact(
        self, host: Host, archive: Path, policy: Optional[RolloutPolicy] = None
    ) -> None:
        """Upload `archive` and swap it in for the artifact directory."""
        policy = policy or RolloutPolicy()
        remote_archive = posixpath.join(
            host.settings.remote_tmp_dir, f"shipwright-restore-{new_backup_id()}.tar.gz"
        )
        try:
            try:
                await self.remote_executor.upload(
                    host.node, str(archive), remote_archive, policy.transfer_timeout
                )
            except OSError as e:
                raise StageError(
                    f"upload of {archive.name} failed: {e}",
                    host=host.name,
                    step=str(HostStep.RESTORE),
                ) from e
            await self.service_control.run_checked(
                host,
                commands.swap_in(remote_archive, host.settings.app_dir),
                policy.command_timeout,
                HostStep.RESTORE,
            )
        finally:
            await self._cleanup_remote(host, remote_archive, policy)

    async def _cleanup_remote(self, host: Host, path: str, policy: RolloutPolicy) -> None:
        try:
            await self.remote_executor.run(host.node, commands.remove(path), policy.command_timeout)
        except (ShipwrightError, OSError) as e:
            logger.debug("%s: could not remove %s: %s", host.name, path, e)

    # -- Validation ----------------------------------------------------------

    def validate_archive(self, path: Path, host: Host) -> None:
        """Raise ConfigurationError unless `path` is a restorable backup for host."""
        if not path.exists() or not path.is_file():
            raise ConfigurationError(f"backup {path} does not exist", host=host.name)
        if path.stat().st_size == 0:
            raise ConfigurationError(f"backup {path} is empty", host=host.name)

        expected = posixpath.basename(host.settings.app_dir.rstrip("/"))
        try:
            with tarfile.open(path, "r:gz") as tar:
                names = tar.getnames()
        except (tarfile.TarError, OSError, EOFError) as e:
            raise ConfigurationError(
                f"backup {path} is not a gzip tar archive: {e}", host=host.name
            ) from e

        if not names:
            raise ConfigurationError(f"backup {path} has no entries", host=host.name)
        for name in names:
            normalized = posixpath.normpath(name)
            if name.startswith("/") or normalized.startswith(".."):
                raise ConfigurationError(
                    f"backup {path} contains unsafe member {name!r}", host=host.name
                )
            if normalized.split("/", 1)[0] != expected:
                raise ConfigurationError(
                    f"backup {path} member {name!r} is outside {expected}/",
                    host=host.name,
                )

    # -- Retention -----------------------------------------------------------

    def sweep_retention(
        self,
        policy: RetentionPolicy,
        now: Optional[datetime] = None,
        hosts: Optional[Iterable[str]] = None,
    ) -> SweepReport:
        """Delete expired backups of `hosts` (every catalogued host when None).

        Callers pass the hosts they hold the lock for; backups of any other
        host are never looked at.
        """
        now = now or datetime.now(UTC)
        report = SweepReport()
        everything: list[Backup] = []
        targets = self.store.hosts() if hosts is None else sorted(set(hosts))
        for host in targets:
            everything.extend(self.store.list(host))

        expired = select_expired(everything, policy, now)
        for backup in expired:
            try:
                self.store.delete(backup.backup_id)
                report.deleted.append(backup)
            except (OSError, KeyError) as e:
                error = RetentionSweepError(
                    f"could not delete backup {backup.backup_id}: {e}",
                    host=backup.host,
                    backup_id=backup.backup_id,
                )
                logger.warning("%s", error)
                report.errors.append(error)

        report.retained = len(everything) - len(report.deleted)
        logger.info(
            "Retention sweep: deleted %d, retained %d, errors %d",
            len(report.deleted),
            report.retained,
            len(report.errors),
        )
        return report
