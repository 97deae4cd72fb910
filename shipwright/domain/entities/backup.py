"""
Backup Entity

Architectural Intent:
- Explicit handle for a snapshot of a host's artifact directory
- Threaded through the rollout pipeline so restore never depends on
  reconstructing a timestamp-derived filename
- Created immediately before a destructive step; destroyed only by the
  retention sweep or consumed by disaster recovery
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
import uuid


class BackupKind(Enum):
    PRE_UPDATE = "pre-update"
    PRE_RECOVERY = "pre-recovery"


def new_backup_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Backup:
    backup_id: str
    host: str
    created_at: datetime
    location: str
    kind: BackupKind = BackupKind.PRE_UPDATE
    deployment_id: Optional[str] = None
    size_bytes: int = 0

    def __post_init__(self) -> None:
        if not self.backup_id:
            raise ValueError("Backup id cannot be empty")
        if not self.host:
            raise ValueError("Backup host cannot be empty")
        if self.created_at.tzinfo is None:
            raise ValueError("Backup created_at must be timezone-aware")

    def age(self, now: Optional[datetime] = None) -> float:
        """Age in seconds relative to `now` (defaults to current UTC time)."""
        now = now or datetime.now(UTC)
        return (now - self.created_at).total_seconds()

    def __str__(self) -> str:
        return f"{self.host}/{self.backup_id} ({self.kind.value}, {self.created_at.isoformat()})"
