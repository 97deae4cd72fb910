"""
Backup Store Port

Architectural Intent:
- Durable storage for artifact snapshots, keyed by backup id
- list() returns a host's backups newest first
- The store owns the archive bytes; the Backup handle is the only way to
  address them
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from shipwright.domain.entities.backup import Backup, BackupKind


class BackupStorePort(ABC):
    @abstractmethod
    def write(
        self,
        host: str,
        archive: Path,
        kind: BackupKind = BackupKind.PRE_UPDATE,
        deployment_id: Optional[str] = None,
    ) -> Backup:
        """Takes ownership of `archive` and returns the Backup handle."""
        pass

    @abstractmethod
    def read(self, backup_id: str) -> Path:
        """Path of the stored archive. Raises KeyError if unknown."""
        pass

    @abstractmethod
    def get(self, backup_id: str) -> Optional[Backup]:
        pass

    @abstractmethod
    def list(self, host: str) -> list[Backup]:
        """Backups of `host`, newest first."""
        pass

    @abstractmethod
    def hosts(self) -> list[str]:
        pass

    @abstractmethod
    def delete(self, backup_id: str) -> None:
        pass
