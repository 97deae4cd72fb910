"""
Service Control

Architectural Intent:
- The deployed-service lifecycle contract as seen from the orchestrator:
  stop, start, dependency install, wait for the listening port, and the
  read-only service state used by monitoring
- Shared by the host executor, the backup manager (restore) and disaster
  recovery, so every flow drives a service the same way
- Fatal-step failures raise StageError tagged with the HostStep that failed
"""

from __future__ import annotations
import logging

from shipwright.application.orchestration import commands
from shipwright.domain.entities.fleet import Host
from shipwright.domain.errors import ConnectivityError, StageError, StepTimeout
from shipwright.domain.ports.remote_executor_port import CommandResult, RemoteExecutorPort
from shipwright.domain.value_objects.host_step import HostStep

logger = logging.getLogger(__name__)


class ServiceControl:
    def __init__(self, remote_executor: RemoteExecutorPort) -> None:
        self.remote_executor = remote_executor

    async def run_checked(
        self, host: Host, command: str, timeout: float, step: HostStep
    ) -> CommandResult:
        try:
            result = await self.remote_executor.run(host.node, command, timeout)
        except StepTimeout as e:
            raise StepTimeout(e.message, host=host.name, step=str(step)) from e
        except OSError as e:
            raise StageError(f"{step} failed: {e}", host=host.name, step=str(step)) from e
        if not result.ok:
            detail = (result.stderr or result.stdout).strip()[-500:]
            raise StageError(
                f"{step} failed (exit {result.exit_code}): {detail}",
                host=host.name,
                step=str(step),
            )
        return result

    async def ping(self, host: Host, timeout: float) -> None:
        """Raises ConnectivityError unless the host runs a trivial command."""
        try:
            result = await self.remote_executor.run(host.node, commands.ping(), timeout)
        except (StepTimeout, OSError) as e:
            raise ConnectivityError(f"no response: {e}", host=host.name) from e
        if not result.ok:
            raise ConnectivityError(
                f"ping exited {result.exit_code}: {result.stderr.strip()}", host=host.name
            )

    async def is_active(self, host: Host, timeout: float) -> str:
        """systemd state of the service (`active`, `failed`, ...), `unreachable` if the host is down.

        A non-zero exit is an answer here, not a failure.
        """
        try:
            result = await self.remote_executor.run(
                host.node, commands.is_active(host.settings.service_name), timeout
            )
        except (ConnectivityError, StepTimeout, OSError) as e:
            logger.warning("%s: service state unknown: %s", host.name, e)
            return "unreachable"
        return result.stdout.strip() or f"unknown (exit {result.exit_code})"

    async def stop(self, host: Host, timeout: float) -> None:
        logger.info("%s: stopping %s", host.name, host.settings.service_name)
        await self.run_checked(
            host, host.settings.effective_stop_command, timeout, HostStep.STOP
        )

    async def start(self, host: Host, timeout: float) -> None:
        logger.info("%s: starting %s", host.name, host.settings.service_name)
        await self.run_checked(
            host, host.settings.effective_start_command, timeout, HostStep.START
        )

    async def install(self, host: Host, timeout: float) -> None:
        if not host.settings.install_command:
            logger.debug("%s: no install command configured", host.name)
            return
        logger.info("%s: installing dependencies", host.name)
        await self.run_checked(
            host,
            commands.in_app_dir(host.settings.app_dir, host.settings.install_command),
            timeout,
            HostStep.INSTALL,
        )

    async def wait_for_port(self, host: Host, timeout: float) -> None:
        port = host.settings.app_port
        command = commands.wait_for_port(port, timeout)
        try:
            result = await self.remote_executor.run(host.node, command, timeout + 5)
        except OSError as e:
            raise StageError(
                f"port check failed: {e}", host=host.name, step=str(HostStep.PORT_WAIT)
            ) from e
        except StepTimeout as e:
            raise StepTimeout(
                f"port {port} not listening within {timeout}s",
                host=host.name,
                step=str(HostStep.PORT_WAIT),
            ) from e
        if not result.ok:
            raise StepTimeout(
                f"port {port} not listening within {timeout}s",
                host=host.name,
                step=str(HostStep.PORT_WAIT),
            )
        logger.debug("%s: port %d is listening", host.name, port)
