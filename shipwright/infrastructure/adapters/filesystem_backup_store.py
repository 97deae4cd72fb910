"""
Filesystem Backup Store

Architectural Intent:
- Implements BackupStorePort on the control machine's disk
- Archives live at <root>/<host>/<backup_id>.tar.gz; the catalog (host,
  timestamp, kind, deployment) is kept in the SQLite repository
- Identity comes from the catalog, never from parsing file names
"""

from __future__ import annotations
import logging
import shutil
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Optional

from shipwright.domain.entities.backup import Backup, BackupKind, new_backup_id
from shipwright.domain.ports.backup_store_port import BackupStorePort
from shipwright.infrastructure.repositories.sqlite_repository import SQLiteRepository

logger = logging.getLogger(__name__)


class FilesystemBackupStore(BackupStorePort):
    def __init__(
        self,
        root: str,
        repository: SQLiteRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._root = Path(root)
        self._repository = repository
        self._clock = clock

    def _path_for(self, host: str, backup_id: str) -> Path:
        return self._root / host / f"{backup_id}.tar.gz"

    def write(
        self,
        host: str,
        archive: Path,
        kind: BackupKind = BackupKind.PRE_UPDATE,
        deployment_id: Optional[str] = None,
    ) -> Backup:
        backup_id = new_backup_id()
        target = self._path_for(host, backup_id)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(archive), target)
        backup = Backup(
            backup_id=backup_id,
            host=host,
            created_at=self._clock(),
            location=str(target),
            kind=kind,
            deployment_id=deployment_id,
            size_bytes=target.stat().st_size,
        )
        try:
            self._repository.add_backup(backup)
        except Exception:
            target.unlink(missing_ok=True)
            raise
        logger.debug("Stored backup %s (%d bytes)", backup, backup.size_bytes)
        return backup

    def read(self, backup_id: str) -> Path:
        backup = self._repository.get_backup(backup_id)
        if backup is None:
            raise KeyError(backup_id)
        path = Path(backup.location)
        if not path.is_file():
            raise KeyError(backup_id)
        return path

    def get(self, backup_id: str) -> Optional[Backup]:
        return self._repository.get_backup(backup_id)

    def list(self, host: str) -> list[Backup]:
        return self._repository.list_backups(host)

    def hosts(self) -> list[str]:
        return self._repository.backup_hosts()

    def delete(self, backup_id: str) -> None:
        backup = self._repository.get_backup(backup_id)
        if backup is None:
            raise KeyError(backup_id)
        Path(backup.location).unlink(missing_ok=True)
        self._repository.remove_backup(backup_id)
        logger.info("Deleted backup %s", backup)
