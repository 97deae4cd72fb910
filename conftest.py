"""Global test configuration.

Shared fixtures wiring the orchestration components to the in-memory
fakes in tests/fakes.py.
"""

import pytest

from shipwright.application.orchestration.backup_manager import BackupManager
from shipwright.application.orchestration.group_lock import GroupLock
from shipwright.application.orchestration.health_gate import HealthGate
from shipwright.application.orchestration.host_executor import HostDeploymentExecutor
from shipwright.application.use_cases.run_rollout import RunRollout
from shipwright.domain.ports.best_effort import BestEffortLoadBalancer, BestEffortNotifier
from tests.fakes import (
    FakeExecutor,
    FakeInventory,
    FakeLoadBalancer,
    FakeNotifier,
    FakeProbe,
    InMemoryBackupStore,
    no_sleep,
    write_tar_gz,
)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def lb():
    return FakeLoadBalancer()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store(tmp_path):
    return InMemoryBackupStore(tmp_path / "store")


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def artifact(tmp_path):
    return str(write_tar_gz(tmp_path / "release.tar.gz", {"index.js": b"new"}))


@pytest.fixture
def health_gate(probe):
    return HealthGate(probe, retries=3, delay=0.0, sleep=no_sleep)


@pytest.fixture
def backup_manager(executor, store):
    return BackupManager(executor, store)


@pytest.fixture
def host_executor(executor, lb):
    return HostDeploymentExecutor(executor, BestEffortLoadBalancer(lb), sleep=no_sleep)


@pytest.fixture
def group_lock():
    return GroupLock()


@pytest.fixture
def rollout(inventory, backup_manager, host_executor, health_gate, notifier, group_lock):
    return RunRollout(
        inventory,
        backup_manager,
        host_executor,
        health_gate,
        BestEffortNotifier(notifier),
        group_lock=group_lock,
    )
