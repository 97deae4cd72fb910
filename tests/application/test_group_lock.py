"""Tests for GroupLock and CancellationToken."""

import sqlite3
from unittest.mock import MagicMock

import pytest

from shipwright.application.orchestration.group_lock import CancellationToken, GroupLock
from shipwright.domain.errors import ConcurrentRolloutError
from shipwright.infrastructure.repositories.sqlite_repository import SQLiteRepository


class TestGroupLock:
    @pytest.mark.asyncio
    async def test_second_holder_rejected(self):
        lock = GroupLock()
        async with lock.hold("web", "rollout a"):
            assert lock.holder("web") == "rollout a"
            with pytest.raises(ConcurrentRolloutError, match="rollout a"):
                async with lock.hold("web", "rollout b"):
                    pass
        assert not lock.is_locked("web")

    @pytest.mark.asyncio
    async def test_groups_are_independent(self):
        lock = GroupLock()
        async with lock.hold("web", "a"):
            async with lock.hold("api", "b"):
                assert lock.is_locked("web") and lock.is_locked("api")

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        lock = GroupLock()
        with pytest.raises(RuntimeError):
            async with lock.hold("web", "a"):
                raise RuntimeError("boom")
        assert not lock.is_locked("web")


class TestHostKeys:
    @pytest.mark.asyncio
    async def test_overlapping_groups_rejected(self):
        lock = GroupLock()
        async with lock.hold("webservers", "rollout a", hosts=["prod1", "prod2", "local"]):
            assert lock.host_holder("prod2") == "rollout a"
            with pytest.raises(ConcurrentRolloutError, match="Host 'prod1' is busy with rollout a"):
                async with lock.hold("prod", "rollout b", hosts=["prod1", "prod2"]):
                    pass
            assert not lock.is_locked("prod")
        assert lock.host_holder("prod1") is None

    @pytest.mark.asyncio
    async def test_partial_acquire_rolled_back(self):
        lock = GroupLock()
        async with lock.hold("b", "first", hosts=["h2"]):
            with pytest.raises(ConcurrentRolloutError):
                async with lock.hold("a", "second", hosts=["h1", "h2"]):
                    pass
            assert lock.host_holder("h1") is None
            assert not lock.is_locked("a")


class TestSharedLockStore:
    @pytest.fixture
    def repositories(self, tmp_path):
        repos = [SQLiteRepository(str(tmp_path / "locks.db")) for _ in range(2)]
        for repo in repos:
            repo.connect()
        yield repos
        for repo in repos:
            repo.close()

    @pytest.mark.asyncio
    async def test_other_registry_rejected(self, repositories):
        first, second = GroupLock(repositories[0]), GroupLock(repositories[1])
        async with first.hold("web", "rollout a", hosts=["web1"]):
            with pytest.raises(ConcurrentRolloutError, match=r"rollout a \(pid \d+ on "):
                async with second.hold("canary", "rollout b", hosts=["web1"]):
                    pass
            assert [r["lock_key"] for r in repositories[1].list_locks()] == [
                "group:web", "host:web1",
            ]
        assert repositories[0].list_locks() == []
        async with second.hold("web", "rollout c", hosts=["web1"]):
            assert second.holder("web") == "rollout c"

    @pytest.mark.asyncio
    async def test_release_failure_is_logged(self, caplog):
        store = MagicMock()
        store.acquire_lock.return_value = None
        store.release_lock.side_effect = sqlite3.OperationalError("database is locked")
        lock = GroupLock(store)
        async with lock.hold("web", "rollout a"):
            pass
        assert not lock.is_locked("web")
        assert "shipwright locks --release group:web" in caplog.text


class TestCancellationToken:
    def test_first_reason_wins(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel("SIGINT")
        token.cancel("again")
        assert token.cancelled
        assert token.reason == "SIGINT"

    def test_default_reason(self):
        token = CancellationToken()
        token.cancel()
        assert token.reason == "cancelled by operator"
