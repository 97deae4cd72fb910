"""Tests for FilesystemBackupStore."""

import typing
from datetime import datetime, UTC
from unittest.mock import MagicMock

import pytest

from shipwright.domain.entities.backup import Backup, BackupKind
from shipwright.domain.ports.backup_store_port import BackupStorePort
from shipwright.infrastructure.adapters.filesystem_backup_store import FilesystemBackupStore
from shipwright.infrastructure.repositories.sqlite_repository import SQLiteRepository

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


@pytest.fixture
def repo(tmp_path):
    r = SQLiteRepository(str(tmp_path / "catalog.db"))
    r.connect()
    yield r
    r.close()


@pytest.fixture
def store(tmp_path, repo):
    return FilesystemBackupStore(str(tmp_path / "backups"), repo, clock=lambda: NOW)


def _archive(tmp_path, name="incoming.tar.gz", data=b"archive-bytes"):
    path = tmp_path / name
    path.write_bytes(data)
    return path


class TestFilesystemBackupStore:
    def test_write_moves_archive_and_catalogs(self, tmp_path, store):
        incoming = _archive(tmp_path)

        backup = store.write("web1", incoming, BackupKind.PRE_UPDATE, "d1")

        assert not incoming.exists()
        assert backup.location == str(tmp_path / "backups" / "web1" / f"{backup.backup_id}.tar.gz")
        assert backup.created_at == NOW
        assert backup.size_bytes == len(b"archive-bytes")
        assert store.get(backup.backup_id) == backup
        assert store.read(backup.backup_id).read_bytes() == b"archive-bytes"

    def test_list_and_hosts(self, tmp_path, store):
        store.write("web2", _archive(tmp_path, "a.tar.gz"))
        store.write("web1", _archive(tmp_path, "b.tar.gz"))
        assert store.hosts() == ["web1", "web2"]
        assert len(store.list("web1")) == 1

    def test_read_unknown_id(self, store):
        with pytest.raises(KeyError):
            store.read("missing")

    def test_read_with_archive_gone(self, tmp_path, store):
        backup = store.write("web1", _archive(tmp_path))
        store.read(backup.backup_id).unlink()
        with pytest.raises(KeyError):
            store.read(backup.backup_id)

    def test_delete_removes_file_and_row(self, tmp_path, store):
        backup = store.write("web1", _archive(tmp_path))
        path = store.read(backup.backup_id)

        store.delete(backup.backup_id)

        assert not path.exists()
        assert store.get(backup.backup_id) is None

    def test_delete_unknown_id(self, store):
        with pytest.raises(KeyError):
            store.delete("missing")

    def test_catalog_failure_removes_orphan_file(self, tmp_path):
        repo = MagicMock()
        repo.add_backup.side_effect = RuntimeError("database is locked")
        store = FilesystemBackupStore(str(tmp_path / "backups"), repo)

        with pytest.raises(RuntimeError):
            store.write("web1", _archive(tmp_path))

        assert list((tmp_path / "backups" / "web1").iterdir()) == []


class TestAnnotations:
    @pytest.mark.parametrize("cls", [BackupStorePort, FilesystemBackupStore])
    def test_list_method_does_not_shadow_builtin(self, cls):
        assert typing.get_type_hints(cls.hosts)["return"] == list[str]
        assert typing.get_type_hints(cls.list)["return"] == list[Backup]
