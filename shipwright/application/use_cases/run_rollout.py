"""
Run Rollout Use Case (Rollout Controller)

Architectural Intent:
- Sequences hosts per strategy (full-batch, serial, canary), tracks each
  host's state machine, triggers backup and rollback, aggregates the result
- Per-host errors are caught at the host-pipeline boundary and folded into
  host state + recorded cause; they never abort the controller
- Only configuration errors (including an unreachable inventory) and a
  concurrent rollout holding the group or any of its hosts abort before any
  host is touched

Concurrency:
- serial: exactly one host in flight; the next starts only after the
  previous one reached Committed, otherwise the rollout halts
- full-batch: hosts independent, bounded by policy.max_concurrency
- canary: first N hosts as a wave; the rest run full-batch only if every
  canary committed

Ordering Guarantees:
- backup strictly precedes the destructive update
- health verification strictly follows service start
- rollback follows a failed verification and is itself verified
- load balancer registration only follows a confirmed-healthy state
- cancellation is observed only between hosts; Committed hosts stay committed
"""

from __future__ import annotations
import asyncio
import logging
import tarfile
from pathlib import Path
from typing import Optional

from shipwright.application.dtos.deployment_dtos import (
    RolloutPlan,
    RolloutRequest,
    RolloutResponse,
)
from shipwright.application.orchestration.backup_manager import BackupManager
from shipwright.application.orchestration.group_lock import CancellationToken, GroupLock
from shipwright.application.orchestration.health_gate import HealthGate
from shipwright.application.orchestration.host_executor import HostDeploymentExecutor
from shipwright.domain.entities.deployment import Deployment, DeploymentResult
from shipwright.domain.entities.fleet import Host
from shipwright.domain.entities.host_run import HostRun
from shipwright.domain.entities.policy import RollbackEscalation, RolloutPolicy, Strategy
from shipwright.domain.errors import (
    BackupError,
    ConfigurationError,
    ConnectivityError,
    HealthCheckTimeout,
    RollbackFailure,
    ShipwrightError,
    describe,
)
from shipwright.domain.ports.best_effort import BestEffortNotifier
from shipwright.domain.ports.deployment_repository_port import DeploymentRepositoryPort
from shipwright.domain.ports.inventory_port import InventoryPort
from shipwright.domain.services.target_resolver import TargetResolver
from shipwright.domain.value_objects.health import HealthStatus
from shipwright.domain.value_objects.host_state import (
    Committed,
    Draining,
    Healthy,
    Pending,
    RolledBack,
    RollingBack,
    Skipped,
    Unhealthy,
    Updating,
    Verifying,
)
from shipwright.domain.value_objects.host_step import HostStep

logger = logging.getLogger(__name__)

# Where an unexpected error most likely came from, by the state it interrupted
_STEP_FOR_STATE = {
    Pending: HostStep.BACKUP,
    Draining: HostStep.DRAIN,
    Updating: HostStep.STAGE,
    Verifying: HostStep.VERIFY,
    Healthy: HostStep.REGISTER,
    Unhealthy: HostStep.RESTORE,
    RollingBack: HostStep.RESTORE,
}


def _context(
    deployment: Deployment, run: Optional[HostRun] = None, step: Optional[str] = None
) -> dict:
    """`extra=` fields attached to controller log records."""
    context = {"deployment_id": deployment.deployment_id, "group": deployment.group}
    if run is not None:
        context["host"] = run.name
    if step:
        context["step"] = step
    return context


class RunRollout:
    def __init__(
        self,
        inventory: InventoryPort,
        backup_manager: BackupManager,
        executor: HostDeploymentExecutor,
        health_gate: HealthGate,
        notifier: BestEffortNotifier,
        group_lock: Optional[GroupLock] = None,
        repository: Optional[DeploymentRepositoryPort] = None,
        resolver: Optional[TargetResolver] = None,
    ) -> None:
        self.inventory = inventory
        self.backup_manager = backup_manager
        self.executor = executor
        self.health_gate = health_gate
        self.notifier = notifier
        self.group_lock = group_lock or GroupLock()
        self.repository = repository
        self.resolver = resolver or TargetResolver()

    # -- Planning ------------------------------------------------------------

    def plan(self, group: str, hosts: list[Host], policy: RolloutPolicy) -> RolloutPlan:
        names = tuple(h.name for h in hosts)
        if policy.strategy == Strategy.SERIAL:
            waves = tuple((n,) for n in names)
        elif policy.strategy == Strategy.CANARY:
            canary, rest = names[: policy.canary_size], names[policy.canary_size:]
            waves = (canary, rest) if rest else (canary,)
        else:
            waves = (names,)
        return RolloutPlan(
            group=group,
            waves=waves,
            concurrency=policy.concurrency,
        )

    def _validate_artifact(self, artifact: str) -> None:
        path = Path(artifact)
        if not path.is_file():
            raise ConfigurationError(f"artifact {artifact} does not exist")
        if not tarfile.is_tarfile(path):
            raise ConfigurationError(f"artifact {artifact} is not a tar archive")

    # -- Execution -----------------------------------------------------------

    async def execute(
        self, request: RolloutRequest, cancel: Optional[CancellationToken] = None
    ) -> RolloutResponse:
        cancel = cancel or CancellationToken()
        fleet = self.inventory.load()
        hosts = self.resolver.resolve(fleet, request.group)
        self._validate_artifact(request.artifact)
        plan = self.plan(request.group, hosts, request.policy)

        if request.dry_run:
            logger.info(
                "DRY RUN: would deploy %s to %d hosts of %s in %d wave(s)",
                request.artifact,
                len(hosts),
                request.group,
                len(plan.waves),
            )
            return RolloutResponse(plan=plan, dry_run=True)

        deployment = Deployment(
            artifact=request.artifact,
            group=request.group,
            strategy=request.policy.strategy,
        )
        names = [h.name for h in hosts]
        async with self.group_lock.hold(
            request.group, f"rollout {deployment.deployment_id}", hosts=names
        ):
            deployment = await self._run(deployment, hosts, request, cancel)

            if request.policy.sweep_after_rollout:
                self._sweep(request, names)

        return RolloutResponse(plan=plan, deployment=deployment)

    async def _run(
        self,
        deployment: Deployment,
        hosts: list[Host],
        request: RolloutRequest,
        cancel: CancellationToken,
    ) -> Deployment:
        policy = request.policy
        runs = [HostRun(host=h) for h in hosts]
        logger.info(
            "Rollout %s: %s -> %s (%s, %d hosts)",
            deployment.deployment_id,
            request.artifact,
            request.group,
            policy.strategy.value,
            len(runs),
            extra=_context(deployment),
        )
        await self.notifier.notify(
            "info",
            f"Rollout of {request.artifact} to {request.group} started "
            f"({policy.strategy.value})",
            tuple(r.name for r in runs),
            deployment.deployment_id,
        )

        if policy.strategy == Strategy.SERIAL:
            aborted = await self._run_serial(runs, deployment, request, cancel)
        elif policy.strategy == Strategy.CANARY:
            aborted = await self._run_canary(runs, deployment, request, cancel)
        else:
            aborted = await self._run_batch(
                runs, deployment, request, cancel, policy.max_concurrency
            )

        for run in runs:
            deployment = deployment.record(run.outcome())
        deployment = deployment.finalize(aborted)
        self._persist(deployment, runs)
        await self._announce(deployment)
        return deployment

    async def _run_serial(
        self,
        runs: list[HostRun],
        deployment: Deployment,
        request: RolloutRequest,
        cancel: CancellationToken,
    ) -> Optional[str]:
        for run in runs:
            if cancel.cancelled:
                logger.warning(
                    "Rollout %s cancelled before %s", deployment.deployment_id, run.name,
                    extra=_context(deployment, run),
                )
                return cancel.reason
            unreachable = await self._run_host(run, deployment, request.policy)
            if unreachable:
                return f"host {run.name} unreachable: {run.cause}"
            if not isinstance(run.state, Committed):
                logger.error(
                    "Serial rollout halted at %s (%s); remaining hosts left pending",
                    run.name,
                    run.state,
                    extra=_context(deployment, run, run.failed_step),
                )
                return None
        return None

    async def _run_batch(
        self,
        runs: list[HostRun],
        deployment: Deployment,
        request: RolloutRequest,
        cancel: CancellationToken,
        concurrency: int,
    ) -> Optional[str]:
        semaphore = asyncio.Semaphore(concurrency)
        left_pending = False

        async def guarded(run: HostRun) -> None:
            nonlocal left_pending
            async with semaphore:
                if cancel.cancelled:
                    left_pending = True
                    return
                await self._run_host(run, deployment, request.policy)

        await asyncio.gather(*(guarded(run) for run in runs))
        if left_pending:
            logger.warning(
                "Rollout %s cancelled: %s", deployment.deployment_id, cancel.reason,
                extra=_context(deployment),
            )
            return cancel.reason
        return None

    async def _run_canary(
        self,
        runs: list[HostRun],
        deployment: Deployment,
        request: RolloutRequest,
        cancel: CancellationToken,
    ) -> Optional[str]:
        policy = request.policy
        canary, rest = runs[: policy.canary_size], runs[policy.canary_size:]
        aborted = await self._run_batch(
            canary, deployment, request, cancel, min(policy.canary_size, policy.max_concurrency)
        )
        if aborted:
            return aborted
        if not all(isinstance(r.state, Committed) for r in canary):
            logger.error(
                "Canary wave failed on %s; %d hosts left pending",
                ", ".join(r.name for r in canary if not isinstance(r.state, Committed)),
                len(rest),
            )
            return None
        if not rest:
            return None
        if cancel.cancelled:
            return cancel.reason
        return await self._run_batch(rest, deployment, request, cancel, policy.max_concurrency)

    # -- Host pipeline -------------------------------------------------------

    async def _run_host(
        self, run: HostRun, deployment: Deployment, policy: RolloutPolicy
    ) -> bool:
        """Drive one host to a terminal state. Returns True if it was unreachable.

        Nothing raised for one host escapes this boundary: an error outside
        the classified ones is folded into the host's state by _contain.
        """
        try:
            return await self._drive_host(run, deployment, policy)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._contain(run, deployment, policy, e)
            return False

    async def _drive_host(
        self, run: HostRun, deployment: Deployment, policy: RolloutPolicy
    ) -> bool:
        host = run.host
        try:
            await self.executor.service_control.ping(host, policy.command_timeout)
            run.backup = await self.backup_manager.create_backup(
                host, deployment.deployment_id, policy=policy
            )
        except ConnectivityError as e:
            run.record_failure(describe(e), str(HostStep.CONNECT))
            run.transition(Skipped(cause=run.cause))
            await self.notifier.notify(
                "warning", f"{host.name} unreachable, skipped: {e}", (host.name,),
                deployment.deployment_id,
            )
            return True
        except BackupError as e:
            run.record_failure(describe(e), str(HostStep.BACKUP))
            run.transition(Skipped(cause=run.cause))
            await self.notifier.notify(
                "warning", f"{host.name} not updated, backup failed: {e}", (host.name,),
                deployment.deployment_id,
            )
            return False

        failure = await self.executor.execute(run, deployment.artifact, policy)
        if failure is not None:
            run.record_failure(describe(failure), failure.step)
            run.transition(Unhealthy(cause=run.cause))
            await self._rollback(run, deployment, policy)
            return False

        result = await self._gate(policy).check(host, timeout=policy.probe_timeout)
        run.health.append(result)
        if result.healthy:
            run.transition(Healthy())
            if not await self.executor.restore_traffic(run):
                logger.warning(
                    "%s: healthy but load balancer registration failed", host.name,
                    extra=_context(deployment, run, str(HostStep.REGISTER)),
                )
            run.transition(Committed())
            logger.info("%s: committed", host.name, extra=_context(deployment, run))
            return False

        error = HealthCheckTimeout(
            f"no 2xx from {host.health_url} after {result.attempts} attempts",
            host=host.name,
            attempts=result.attempts,
        )
        run.record_failure(describe(error), str(HostStep.VERIFY))
        run.transition(Unhealthy(cause=run.cause))
        await self._rollback(run, deployment, policy)
        return False

    async def _contain(
        self, run: HostRun, deployment: Deployment, policy: RolloutPolicy, error: Exception
    ) -> None:
        """Settle a host whose pipeline raised something unclassified."""
        state = run.state
        step = _STEP_FOR_STATE.get(type(state), HostStep.CONNECT)
        logger.exception(
            "%s: unexpected error while %s: %s", run.name, state, error,
            extra=_context(deployment, run, str(step)),
        )
        if state.is_terminal:
            return
        if isinstance(state, Healthy):
            # Verified healthy already; only the registration call went wrong.
            run.transition(Committed())
            return

        run.record_failure(describe(error), str(step))
        if isinstance(state, Pending):
            run.transition(Skipped(cause=run.cause))
            await self.notifier.notify(
                "warning", f"{run.name} not updated: {run.cause}", (run.name,),
                deployment.deployment_id,
            )
            return

        if isinstance(state, (Draining, Updating, Verifying)):
            run.transition(Unhealthy(cause=run.cause))
            try:
                await self._rollback(run, deployment, policy)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "%s: rollback raised: %s", run.name, e,
                    extra=_context(deployment, run, str(HostStep.RESTORE)),
                )

        if not run.state.is_terminal:
            run.transition(Unhealthy(cause=run.cause, final=True))
            await self._critical(run, deployment, describe(error))

    async def _rollback(
        self, run: HostRun, deployment: Deployment, policy: RolloutPolicy
    ) -> None:
        host = run.host
        if not policy.rollback_on_failure or run.backup is None:
            run.transition(Unhealthy(cause=run.cause, final=True))
            await self._critical(run, deployment, "rollback disabled")
            return

        attempts = 2 if policy.rollback_escalation == RollbackEscalation.RETRY_ONCE else 1
        last_error: Optional[ShipwrightError] = None
        for attempt in range(1, attempts + 1):
            run.transition(RollingBack(attempt=attempt))
            try:
                await self.backup_manager.restore_backup(host, run.backup, policy)
            except RollbackFailure as e:
                last_error = e
                logger.error(
                    "%s: rollback attempt %d failed: %s", host.name, attempt, e,
                    extra=_context(deployment, run, str(HostStep.RESTORE)),
                )
                continue

            result = await self._gate(policy).check(host, timeout=policy.probe_timeout)
            run.health.append(result)
            if result.healthy:
                await self.executor.restore_traffic(run)
                run.transition(RolledBack(cause=run.cause))
                logger.warning(
                    "%s: rolled back to backup %s", host.name, run.backup.backup_id,
                    extra=_context(deployment, run, str(HostStep.RESTORE)),
                )
                await self.notifier.notify(
                    "warning",
                    f"{host.name} rolled back to {run.backup.backup_id}: {run.cause}",
                    (host.name,),
                    deployment.deployment_id,
                )
                return
            last_error = RollbackFailure(
                f"host still unhealthy after restore (attempt {attempt})", host=host.name
            )

        run.transition(Unhealthy(cause=run.cause, final=True))
        await self._critical(run, deployment, describe(last_error) if last_error else "rollback failed")

    async def _critical(self, run: HostRun, deployment: Deployment, detail: str) -> None:
        logger.critical(
            "%s left unhealthy (%s); disaster recovery required. Cause: %s",
            run.name,
            detail,
            run.cause,
            extra=_context(deployment, run, run.failed_step),
        )
        await self.notifier.notify(
            "critical",
            f"{run.name} left unhealthy ({detail}); disaster recovery required. "
            f"Cause: {run.cause}",
            (run.name,),
            deployment.deployment_id,
        )

    def _gate(self, policy: RolloutPolicy) -> HealthGate:
        return self.health_gate.with_budget(policy.health_retries, policy.health_retry_delay)

    # -- Finalization --------------------------------------------------------

    def _persist(self, deployment: Deployment, runs: list[HostRun]) -> None:
        if self.repository is None:
            return
        self.repository.save_deployment(deployment)
        for run in runs:
            if not run.health:
                health = HealthStatus.UNKNOWN.value
            else:
                health = run.health[-1].status.value
            self.repository.update_host_status(
                run.name,
                run.state.label,
                health,
                deployment.deployment_id if isinstance(run.state, Committed) else None,
            )

    async def _announce(self, deployment: Deployment) -> None:
        committed = deployment.hosts_in("committed")
        severity = {
            DeploymentResult.SUCCEEDED: "info",
            DeploymentResult.PARTIALLY_FAILED: "warning",
            DeploymentResult.ROLLED_BACK: "warning",
            DeploymentResult.ABORTED: "critical",
        }[deployment.result]
        message = (
            f"Rollout {deployment.deployment_id} of {deployment.artifact} to "
            f"{deployment.group}: {deployment.result.value} "
            f"({len(committed)}/{len(deployment.outcomes)} committed)"
        )
        if deployment.aborted_reason:
            message += f"; aborted: {deployment.aborted_reason}"
        logger.log(
            logging.INFO if severity == "info" else logging.WARNING, "%s", message,
            extra=_context(deployment),
        )
        await self.notifier.notify(
            severity,
            message,
            tuple(o.host for o in deployment.outcomes),
            deployment.deployment_id,
        )

    def _sweep(self, request: RolloutRequest, hosts: list[str]) -> None:
        try:
            self.backup_manager.sweep_retention(request.retention, hosts=hosts)
        except Exception as e:
            logger.error("Retention sweep failed, will retry on next sweep: %s", e)
