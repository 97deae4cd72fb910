"""
Host Deployment Executor

Architectural Intent:
- Drives one host through drain -> stop -> stage -> start -> port-wait,
  strictly in sequence; each step depends on the previous one completing
- The first failing step halts the rest and is returned as the failure point
- Drain is best-effort (logged, never fatal); everything after it is fatal
- Re-registration with the load balancer is a separate call the controller
  makes only after the Health Gate confirmed the host healthy

Step Details:
1. Drain: deregister from the load balancer, wait drain_timeout
2. Stop service
3. Stage: upload release archive, unpack into app_dir, install dependencies
4. Start service
5. Wait for the listening port within start_timeout
"""

from __future__ import annotations
import asyncio
import logging
import posixpath
from typing import Awaitable, Callable, Optional

from shipwright.application.orchestration import commands
from shipwright.application.orchestration.service_control import ServiceControl
from shipwright.domain.entities.host_run import HostRun
from shipwright.domain.entities.policy import RolloutPolicy
from shipwright.domain.entities.backup import new_backup_id
from shipwright.domain.errors import ConnectivityError, StageError, ShipwrightError, describe
from shipwright.domain.ports.best_effort import BestEffortLoadBalancer
from shipwright.domain.ports.remote_executor_port import RemoteExecutorPort
from shipwright.domain.value_objects.host_state import Draining, Updating, Verifying
from shipwright.domain.value_objects.host_step import HostStep

logger = logging.getLogger(__name__)


class HostDeploymentExecutor:
    def __init__(
        self,
        remote_executor: RemoteExecutorPort,
        load_balancer: BestEffortLoadBalancer,
        service_control: Optional[ServiceControl] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.remote_executor = remote_executor
        self.load_balancer = load_balancer
        self.service_control = service_control or ServiceControl(remote_executor)
        self._sleep = sleep

    async def execute(
        self, run: HostRun, artifact: str, policy: RolloutPolicy
    ) -> Optional[StageError]:
        """Run the pipeline; None on success, else the StageError of the failed step.

        Leaves the run in Verifying on success. On failure the run stays in
        the state where the failure happened; the caller decides rollback.
        """
        run.transition(Draining())
        await self.drain(run, policy)

        run.transition(Updating())
        try:
            await self.service_control.stop(run.host, policy.command_timeout)
            await self.stage(run, artifact, policy)
            await self.service_control.start(run.host, policy.command_timeout)
            await self.service_control.wait_for_port(run.host, policy.start_timeout)
        except StageError as e:
            logger.error("%s: pipeline halted at %s: %s", run.name, e.step, e.message)
            return e
        except ConnectivityError as e:
            logger.error("%s: lost connection mid-pipeline: %s", run.name, e)
            return StageError(describe(e), host=run.name, step=str(HostStep.CONNECT))

        run.transition(Verifying())
        return None

    async def drain(self, run: HostRun, policy: RolloutPolicy) -> None:
        if not self.load_balancer.enabled:
            return
        if await self.load_balancer.deregister(run.name):
            logger.info("%s: draining for %.0fs", run.name, policy.drain_timeout)
            await self._sleep(policy.drain_timeout)
        else:
            logger.warning("%s: drain failed, proceeding with update", run.name)

    async def stage(self, run: HostRun, artifact: str, policy: RolloutPolicy) -> None:
        host = run.host
        remote_archive = posixpath.join(
            host.settings.remote_tmp_dir, f"shipwright-release-{new_backup_id()}.tar.gz"
        )
        logger.info("%s: staging %s", host.name, artifact)
        try:
            try:
                await self.remote_executor.upload(
                    host.node, artifact, remote_archive, policy.transfer_timeout
                )
            except ConnectivityError:
                raise
            except (ShipwrightError, OSError) as e:
                raise StageError(
                    f"upload failed: {e}", host=host.name, step=str(HostStep.STAGE)
                ) from e
            await self.service_control.run_checked(
                host,
                commands.extract_over(remote_archive, host.settings.app_dir),
                policy.command_timeout,
                HostStep.STAGE,
            )
        finally:
            try:
                await self.remote_executor.run(
                    host.node, commands.remove(remote_archive), policy.command_timeout
                )
            except (ShipwrightError, OSError) as e:
                logger.debug("%s: could not remove %s: %s", host.name, remote_archive, e)
        await self.service_control.install(host, policy.command_timeout)

    async def restore_traffic(self, run: HostRun) -> bool:
        """Re-register with the load balancer. Only call once the host is healthy."""
        if not self.load_balancer.enabled:
            return True
        return await self.load_balancer.register(run.name)
