"""
Group Lock & Cancellation

Architectural Intent:
- At most one rollout (or sweep, or recovery) may touch a host at a time; a
  second request is rejected, never interleaved, so per-host ordering
  guarantees hold
- A holder locks its group name and every host the group resolved to, so a
  parent group and one of its children exclude each other
- With a LockStorePort the same keys are taken in shared storage and other
  processes (another CLI invocation) are rejected too
- Cancellation is cooperative and only observed at host boundaries
"""

from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from shipwright.domain.errors import ConcurrentRolloutError
from shipwright.domain.ports.lock_store_port import LockStorePort

logger = logging.getLogger(__name__)


def group_key(group: str) -> str:
    return f"group:{group}"


def host_key(host: str) -> str:
    return f"host:{host}"


def _describe(key: str) -> str:
    kind, _, name = key.partition(":")
    return f"{kind.capitalize()} {name!r}"


class GroupLock:
    """Advisory lock registry keyed by group and by host."""

    def __init__(self, store: Optional[LockStorePort] = None) -> None:
        self._holders: dict[str, str] = {}
        self._store = store

    def is_locked(self, group: str) -> bool:
        return group_key(group) in self._holders

    def holder(self, group: str) -> Optional[str]:
        return self._holders.get(group_key(group))

    def host_holder(self, host: str) -> Optional[str]:
        return self._holders.get(host_key(host))

    @asynccontextmanager
    async def hold(
        self, group: str, holder: str, hosts: Iterable[str] = ()
    ) -> AsyncIterator[None]:
        keys = [group_key(group)] + [host_key(h) for h in sorted(set(hosts))]
        acquired: list[str] = []
        try:
            # No await between the checks and the sets: atomic on one event loop.
            for key in keys:
                self._acquire(key, holder)
                acquired.append(key)
            logger.debug("Group %s locked by %s (%d hosts)", group, holder, len(keys) - 1)
            yield
        finally:
            for key in reversed(acquired):
                self._release(key, holder)
            if acquired:
                logger.debug("Group %s released by %s", group, holder)

    def _acquire(self, key: str, holder: str) -> None:
        current = self._holders.get(key)
        if current is None and self._store is not None:
            current = self._store.acquire_lock(key, holder)
        if current is not None:
            raise ConcurrentRolloutError(
                f"{_describe(key)} is busy with {current}; request {holder} rejected"
            )
        self._holders[key] = holder

    def _release(self, key: str, holder: str) -> None:
        self._holders.pop(key, None)
        if self._store is None:
            return
        try:
            self._store.release_lock(key, holder)
        except Exception as e:
            logger.error(
                "Could not release lock %s held by %s: %s (clear it with `shipwright locks --release %s`)",
                key, holder, e, key,
            )


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by operator") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason
