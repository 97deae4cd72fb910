"""
Lock Store Port

Architectural Intent:
- Shared storage for rollout locks, so separate operator processes see the
  same groups and hosts as busy
- acquire_lock is an atomic test-and-set per key
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class LockStorePort(Protocol):
    def acquire_lock(self, key: str, holder: str) -> Optional[str]:
        """Take `key` for `holder`. Returns the current holder when it is taken."""
        ...

    def release_lock(self, key: str, holder: str) -> None: ...
