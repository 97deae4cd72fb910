"""Tests for automatic rollback inside a rollout."""

import pytest

from shipwright.application.dtos.deployment_dtos import RolloutRequest
from shipwright.domain.entities.deployment import DeploymentResult
from shipwright.domain.entities.policy import RollbackEscalation, RolloutPolicy
from shipwright.domain.ports.remote_executor_port import CommandResult
from tests.fakes import make_fleet


def _request(artifact, **overrides):
    values = dict(health_retries=3, health_retry_delay=0.0, drain_timeout=0.0)
    values.update(overrides)
    return RolloutRequest(group="web", artifact=artifact, policy=RolloutPolicy(**values))


@pytest.fixture
def single_host(inventory):
    inventory.fleet = make_fleet(1)
    return inventory


class TestRollback:
    @pytest.mark.asyncio
    async def test_stage_failure_rolls_back(self, rollout, single_host, artifact, executor):
        # first start (the update) fails, the restore's start succeeds
        executor.script("10.0.0.1", "systemctl start", CommandResult(1, stderr="bad unit"), times=1)

        response = await rollout.execute(_request(artifact))

        outcome = response.deployment.outcome_for("web1")
        assert outcome.state == "rolled-back"
        assert outcome.failed_step == "start"
        assert "bad unit" in outcome.cause
        assert response.deployment.result == DeploymentResult.ROLLED_BACK
        labels = [label for label, _ in outcome.history]
        assert labels == [
            "pending", "draining", "updating", "unhealthy", "rolling-back", "rolled-back"
        ]

    @pytest.mark.asyncio
    async def test_rollback_restores_the_pre_update_backup(
        self, rollout, single_host, artifact, executor, probe, store
    ):
        probe.set("10.0.0.1", 500, 500, 500, 200)

        response = await rollout.execute(_request(artifact))

        outcome = response.deployment.outcome_for("web1")
        backup = store.get(outcome.backup_id)
        assert backup.deployment_id == response.deployment.deployment_id
        uploads = [d for _, k, d in executor.calls if k == "upload"]
        # release upload first, then the backup archive
        assert uploads[0].startswith(artifact)
        assert uploads[1].startswith(backup.location)
        swap = [c for c in executor.commands_for("10.0.0.1") if ".restore" in c]
        assert len(swap) == 1

    @pytest.mark.asyncio
    async def test_escalate_leaves_host_unhealthy(
        self, rollout, single_host, artifact, probe, notifier, lb
    ):
        probe.set("10.0.0.1", 500)

        response = await rollout.execute(_request(artifact))

        outcome = response.deployment.outcome_for("web1")
        assert outcome.state == "unhealthy"
        assert outcome.failed_step == "verify"
        assert "critical" in notifier.severities()
        assert ("register", "web1") not in lb.calls
        assert response.deployment.result == DeploymentResult.PARTIALLY_FAILED

    @pytest.mark.asyncio
    async def test_retry_once_gets_a_second_attempt(self, rollout, single_host, artifact, probe):
        # update: 3 failures; first rollback: 3 failures; second rollback: healthy
        probe.set("10.0.0.1", *([500] * 6), 200)

        response = await rollout.execute(
            _request(artifact, rollback_escalation=RollbackEscalation.RETRY_ONCE)
        )

        outcome = response.deployment.outcome_for("web1")
        assert outcome.state == "rolled-back"
        labels = [label for label, _ in outcome.history]
        assert labels.count("rolling-back") == 2
        assert outcome.health_attempts == 7

    @pytest.mark.asyncio
    async def test_retry_once_after_failed_restore(self, rollout, single_host, artifact, executor, probe):
        probe.set("10.0.0.1", 500, 500, 500, 200)
        # the swap-in of the first restore fails, the second succeeds
        executor.script("10.0.0.1", "mkdir -p /opt/app.restore", CommandResult(2), times=1)

        response = await rollout.execute(
            _request(artifact, rollback_escalation=RollbackEscalation.RETRY_ONCE)
        )

        assert response.deployment.outcome_for("web1").state == "rolled-back"

    @pytest.mark.asyncio
    async def test_restore_failure_escalates(
        self, rollout, single_host, artifact, executor, probe, notifier
    ):
        probe.set("10.0.0.1", 500)
        executor.script("10.0.0.1", "mkdir -p /opt/app.restore", CommandResult(2))

        response = await rollout.execute(_request(artifact))

        outcome = response.deployment.outcome_for("web1")
        assert outcome.state == "unhealthy"
        critical = [n for n in notifier.sent if n.severity == "critical"]
        assert "RollbackFailure" in critical[0].message

    @pytest.mark.asyncio
    async def test_rollback_disabled(self, rollout, single_host, artifact, executor, probe, notifier):
        probe.set("10.0.0.1", 500)

        response = await rollout.execute(_request(artifact, rollback_on_failure=False))

        outcome = response.deployment.outcome_for("web1")
        assert outcome.state == "unhealthy"
        assert not any(".restore" in c for c in executor.commands_for("10.0.0.1"))
        assert "rollback disabled" in notifier.sent[-2].message
