"""
Best-Effort Call Wrappers

Architectural Intent:
- Separates, by type, external calls whose failure is only logged from
  calls whose failure is fatal
- The host executor and rollout controller accept these wrappers, never the
  raw LoadBalancerPort / NotificationPort, so a best-effort call cannot be
  accidentally promoted to a fatal one
- Every wrapped call is bounded by a timeout and returns bool
"""

import asyncio
import logging
from typing import Awaitable, Optional

from shipwright.domain.ports.load_balancer_port import LoadBalancerPort
from shipwright.domain.ports.notification_port import Notification, NotificationPort

logger = logging.getLogger(__name__)


async def _attempt(label: str, call: Awaitable[None], timeout: float) -> bool:
    try:
        await asyncio.wait_for(call, timeout=timeout)
        return True
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("Best-effort %s failed: %s", label, e)
        return False


class BestEffortLoadBalancer:
    """`port=None` means no load balancer fronts the group."""

    def __init__(self, port: Optional[LoadBalancerPort] = None, timeout: float = 10.0) -> None:
        self._port = port
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return self._port is not None

    async def deregister(self, host: str) -> bool:
        if self._port is None:
            return True
        return await _attempt(f"deregister({host})", self._port.deregister(host), self._timeout)

    async def register(self, host: str) -> bool:
        if self._port is None:
            return True
        return await _attempt(f"register({host})", self._port.register(host), self._timeout)


class BestEffortNotifier:
    def __init__(self, port: NotificationPort, timeout: float = 10.0) -> None:
        self._port = port
        self._timeout = timeout

    async def send(self, notification: Notification) -> bool:
        return await _attempt(
            f"notify({notification.severity})",
            self._port.send(notification),
            self._timeout,
        )

    async def notify(
        self,
        severity: str,
        message: str,
        hosts: tuple[str, ...] = (),
        deployment_id: Optional[str] = None,
    ) -> bool:
        return await self.send(
            Notification(
                severity=severity,
                message=message,
                hosts=tuple(hosts),
                deployment_id=deployment_id,
            )
        )
