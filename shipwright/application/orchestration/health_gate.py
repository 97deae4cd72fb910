"""
Health Gate

Architectural Intent:
- Bounded-retry probe classifying a host HEALTHY or UNHEALTHY
- Fixed retry count x fixed delay, no backoff
- The first 2xx short-circuits success; transport errors count as failed
  attempts; an exhausted budget classifies the host UNHEALTHY
- Gates rollout progression and decides rollback
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Callable, Awaitable, Optional

from shipwright.domain.entities.fleet import Host
from shipwright.domain.ports.health_probe_port import HealthProbePort
from shipwright.domain.value_objects.health import HealthCheckResult, HealthStatus

logger = logging.getLogger(__name__)


class HealthGate:
    def __init__(
        self,
        probe: HealthProbePort,
        retries: int = 10,
        delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if retries < 1:
            raise ValueError("retries must be >= 1")
        self.probe = probe
        self.retries = retries
        self.delay = delay
        self._sleep = sleep

    def with_budget(self, retries: int, delay: float) -> "HealthGate":
        return HealthGate(self.probe, retries=retries, delay=delay, sleep=self._sleep)

    async def check(
        self, host: Host, endpoint: Optional[str] = None, timeout: float = 10.0
    ) -> HealthCheckResult:
        url = endpoint or host.health_url
        started = time.monotonic()
        status_code: Optional[int] = None
        error: Optional[str] = None

        for attempt in range(1, self.retries + 1):
            try:
                status_code = await asyncio.wait_for(
                    self.probe.probe(url, timeout), timeout=timeout + 1
                )
                error = None
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                status_code, error = None, f"timed out after {timeout}s"
            except Exception as e:
                status_code, error = None, str(e) or type(e).__name__

            if status_code is not None and 200 <= status_code < 300:
                result = HealthCheckResult(
                    host=host.name,
                    status=HealthStatus.HEALTHY,
                    attempts=attempt,
                    latency=time.monotonic() - started,
                    status_code=status_code,
                )
                logger.info("Health gate passed: %s", result)
                return result

            logger.debug(
                "%s: health attempt %d/%d failed (%s)",
                host.name,
                attempt,
                self.retries,
                status_code if status_code is not None else error,
            )
            if attempt < self.retries:
                await self._sleep(self.delay)

        result = HealthCheckResult(
            host=host.name,
            status=HealthStatus.UNHEALTHY,
            attempts=self.retries,
            latency=time.monotonic() - started,
            status_code=status_code,
            error=error,
        )
        logger.warning("Health gate failed: %s", result)
        return result
