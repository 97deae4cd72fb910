"""Tests for the Host Deployment Executor."""

import pytest

from shipwright.application.orchestration.host_executor import HostDeploymentExecutor
from shipwright.domain.entities.host_run import HostRun
from shipwright.domain.entities.policy import RolloutPolicy
from shipwright.domain.errors import ConnectivityError, StepTimeout
from shipwright.domain.ports.best_effort import BestEffortLoadBalancer
from shipwright.domain.ports.remote_executor_port import CommandResult
from shipwright.domain.services.target_resolver import TargetResolver
from shipwright.domain.value_objects.host_state import Updating, Verifying
from tests.fakes import FakeExecutor, FakeLoadBalancer, make_fleet, no_sleep

POLICY = RolloutPolicy(drain_timeout=30.0, start_timeout=60.0)


def _run(**group_vars):
    host = TargetResolver().resolve(make_fleet(1, **group_vars), "web")[0]
    return HostRun(host=host)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestExecute:
    @pytest.mark.asyncio
    async def test_pipeline_in_order(self, executor, lb, artifact):
        sleep = RecordingSleep()
        host_executor = HostDeploymentExecutor(executor, BestEffortLoadBalancer(lb), sleep=sleep)
        run = _run(install_command="npm ci --production")

        failure = await host_executor.execute(run, artifact, POLICY)

        assert failure is None
        assert isinstance(run.state, Verifying)
        assert lb.calls == [("deregister", "web1")]
        assert sleep.delays == [30.0]
        kinds = [k if k != "run" else d.split()[0] for _, k, d in executor.calls]
        assert kinds == ["systemctl", "upload", "mkdir", "rm", "cd", "systemctl", "timeout"]
        commands = executor.commands_for("10.0.0.1")
        assert commands[0] == "systemctl stop app"
        assert "tar -xzf /tmp/shipwright-release-" in commands[1]
        assert commands[3] == "cd /opt/app && npm ci --production"
        assert "/dev/tcp/127.0.0.1/3000" in commands[5]

    @pytest.mark.asyncio
    async def test_stop_failure_halts(self, executor, host_executor, artifact):
        executor.script("10.0.0.1", "systemctl stop", CommandResult(1, stderr="denied"))
        run = _run()

        failure = await host_executor.execute(run, artifact, POLICY)

        assert failure.step == "stop"
        assert "denied" in failure.message
        assert isinstance(run.state, Updating)
        assert len(executor.calls) == 1

    @pytest.mark.asyncio
    async def test_upload_failure_is_stage_step(self, executor, host_executor, artifact):
        executor.script("10.0.0.1", "upload", OSError("sftp write failed"))
        run = _run()

        failure = await host_executor.execute(run, artifact, POLICY)

        assert failure.step == "stage"
        # remote temp file cleaned up even though the upload failed
        assert executor.commands_for("10.0.0.1")[-1].startswith("rm -f /tmp/shipwright-release-")
        assert not any("systemctl start" in c for c in executor.commands_for("10.0.0.1"))

    @pytest.mark.asyncio
    async def test_port_never_opens(self, executor, host_executor, artifact):
        executor.script("10.0.0.1", "timeout 60", CommandResult(124))
        failure = await host_executor.execute(_run(), artifact, POLICY)
        assert isinstance(failure, StepTimeout)
        assert failure.step == "port-wait"

    @pytest.mark.asyncio
    async def test_connection_lost_mid_pipeline(self, executor, host_executor, artifact):
        executor.script("10.0.0.1", "systemctl daemon-reload", ConnectivityError("reset"))
        failure = await host_executor.execute(_run(), artifact, POLICY)
        assert failure.step == "connect"
        assert "ConnectivityError" in failure.message

    @pytest.mark.asyncio
    async def test_drain_failure_is_not_fatal(self, executor, artifact):
        lb = FakeLoadBalancer(fail=True)
        host_executor = HostDeploymentExecutor(executor, BestEffortLoadBalancer(lb), sleep=no_sleep)
        run = _run()

        failure = await host_executor.execute(run, artifact, POLICY)

        assert failure is None
        assert isinstance(run.state, Verifying)

    @pytest.mark.asyncio
    async def test_no_load_balancer_skips_drain(self, artifact):
        sleep = RecordingSleep()
        host_executor = HostDeploymentExecutor(FakeExecutor(), BestEffortLoadBalancer(), sleep=sleep)
        await host_executor.execute(_run(), artifact, POLICY)
        assert sleep.delays == []


class TestRestoreTraffic:
    @pytest.mark.asyncio
    async def test_registers_host(self, lb, host_executor):
        assert await host_executor.restore_traffic(_run()) is True
        assert lb.calls == [("register", "web1")]

    @pytest.mark.asyncio
    async def test_failure_reported_not_raised(self, executor):
        host_executor = HostDeploymentExecutor(
            executor, BestEffortLoadBalancer(FakeLoadBalancer(fail=True)), sleep=no_sleep
        )
        assert await host_executor.restore_traffic(_run()) is False
