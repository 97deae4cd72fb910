"""
Retention Rule

Architectural Intent:
- Pure selection of which backups a sweep may delete
- Invariant: the newest backup of every host is never selected, whatever
  its age, so at least one restore point always survives
"""

from __future__ import annotations
from datetime import datetime
from typing import Iterable

from shipwright.domain.entities.backup import Backup
from shipwright.domain.entities.policy import RetentionPolicy


def select_expired(
    backups: Iterable[Backup], policy: RetentionPolicy, now: datetime
) -> list[Backup]:
    """Backups strictly older than policy.max_age, excluding each host's newest."""
    by_host: dict[str, list[Backup]] = {}
    for backup in backups:
        by_host.setdefault(backup.host, []).append(backup)

    expired: list[Backup] = []
    for host_backups in by_host.values():
        ordered = sorted(host_backups, key=lambda b: b.created_at, reverse=True)
        for backup in ordered[1:]:
            if now - backup.created_at > policy.max_age:
                expired.append(backup)
    return expired
