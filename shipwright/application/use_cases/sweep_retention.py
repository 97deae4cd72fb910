"""
Sweep Retention Use Case

Architectural Intent:
- Scheduled or operator-triggered retention sweep over the backup store
- Locks the swept group and every host in it, so a sweep never races an
  active rollout whose fresh pre-update backups must survive until it is
  finalized, and only deletes backups of the hosts it locked
- Without a group the whole fleet is locked and every catalogued host is
  swept, including hosts no longer in the inventory
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from shipwright.application.orchestration.backup_manager import BackupManager, SweepReport
from shipwright.application.orchestration.group_lock import GroupLock
from shipwright.domain.entities.policy import RetentionPolicy
from shipwright.domain.ports.inventory_port import InventoryPort
from shipwright.domain.services.target_resolver import TargetResolver

logger = logging.getLogger(__name__)

FLEET = "all"


class SweepRetention:
    def __init__(
        self,
        backup_manager: BackupManager,
        inventory: InventoryPort,
        group_lock: Optional[GroupLock] = None,
        resolver: Optional[TargetResolver] = None,
    ):
        self.backup_manager = backup_manager
        self.inventory = inventory
        self.group_lock = group_lock or GroupLock()
        self.resolver = resolver or TargetResolver()

    async def execute(
        self,
        group: Optional[str],
        policy: RetentionPolicy,
        now: Optional[datetime] = None,
    ) -> SweepReport:
        fleet = self.inventory.load()
        if group is None:
            locked = fleet.host_names
            swept = None
        else:
            locked = [h.name for h in self.resolver.resolve(fleet, group)]
            swept = locked

        async with self.group_lock.hold(group or FLEET, "retention sweep", hosts=locked):
            report = self.backup_manager.sweep_retention(policy, now, hosts=swept)
        if not report.ok:
            logger.warning(
                "Retention sweep left %d backup(s) behind; they are retried next sweep",
                len(report.errors),
            )
        return report
