"""
Monitor Fleet Use Case

Architectural Intent:
- Read-only status report for a group: the systemd state of each host's
  service plus one health check per endpoint (the host's health path, then
  readiness and liveness by default)
- Every endpoint gets a single attempt; monitoring reports, it never waits
  for a host to recover
- Touches nothing, so it takes no lock and may run beside a rollout
"""

from __future__ import annotations
import asyncio
import logging
from typing import Optional

from shipwright.application.dtos.deployment_dtos import (
    EndpointCheck,
    HostMonitorReport,
    MonitorRequest,
    MonitorResponse,
)
from shipwright.application.orchestration.health_gate import HealthGate
from shipwright.application.orchestration.service_control import ServiceControl
from shipwright.domain.entities.fleet import Host
from shipwright.domain.ports.inventory_port import InventoryPort
from shipwright.domain.services.target_resolver import TargetResolver

logger = logging.getLogger(__name__)


class MonitorFleet:
    def __init__(
        self,
        inventory: InventoryPort,
        service_control: ServiceControl,
        health_gate: HealthGate,
        resolver: Optional[TargetResolver] = None,
    ) -> None:
        self.inventory = inventory
        self.service_control = service_control
        self.health_gate = health_gate.with_budget(1, 0.0)
        self.resolver = resolver or TargetResolver()

    async def execute(self, request: MonitorRequest) -> MonitorResponse:
        hosts = self.resolver.resolve(self.inventory.load(), request.group)
        semaphore = asyncio.Semaphore(request.max_concurrency)

        async def guarded(host: Host) -> HostMonitorReport:
            async with semaphore:
                return await self._inspect(host, request)

        reports = tuple(await asyncio.gather(*(guarded(h) for h in hosts)))
        unhealthy = [r.host for r in reports if not r.ok]
        if unhealthy:
            logger.warning("Monitor %s: attention needed on %s", request.group, ", ".join(unhealthy))
        else:
            logger.info("Monitor %s: %d host(s) active and healthy", request.group, len(reports))
        return MonitorResponse(group=request.group, hosts=reports)

    async def _inspect(self, host: Host, request: MonitorRequest) -> HostMonitorReport:
        state = await self.service_control.is_active(host, request.timeout)
        paths = [host.settings.health_path]
        paths += [p for p in request.paths if p not in paths]

        checks = []
        for path in paths:
            result = await self.health_gate.check(
                host, endpoint=host.url_for(path), timeout=request.timeout
            )
            checks.append(
                EndpointCheck(
                    path=path,
                    healthy=result.healthy,
                    status_code=result.status_code,
                    error=result.error,
                )
            )
        return HostMonitorReport(host=host.name, service_state=state, endpoints=tuple(checks))
