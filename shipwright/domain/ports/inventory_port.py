"""
Inventory Port

Architectural Intent:
- Source of the Fleet definition (file, CMDB, cloud API)
- An unreachable source raises InventoryUnavailableError, which aborts a
  rollout before any host is touched
"""

from typing import Protocol, runtime_checkable
from shipwright.domain.entities.fleet import Fleet


@runtime_checkable
class InventoryPort(Protocol):
    def load(self) -> Fleet: ...
