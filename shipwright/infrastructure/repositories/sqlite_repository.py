"""
SQLite Repository

Architectural Intent:
- Persistent storage backend using SQLite (stdlib, zero external deps)
- Stores the backup catalog, finalized deployment records, the last
  known status of every host and the rollout locks shared between processes
- Implements DeploymentRepositoryPort for the rollout controller
- Uses WAL mode for concurrent read/write support

Design Decisions:
- Single database file at configurable path (default: shipwright.db)
- Auto-creates tables on first use
- Thread-safe via sqlite3's check_same_thread=False
- Timestamps stored as ISO 8601 strings; per-host outcomes as JSON
"""

from __future__ import annotations
import sqlite3
import json
import logging
import os
import socket
from datetime import datetime, UTC
from typing import Optional

from shipwright.domain.entities.backup import Backup, BackupKind
from shipwright.domain.entities.deployment import Deployment

logger = logging.getLogger(__name__)


class SQLiteRepository:
    """Persistent storage using SQLite."""

    def __init__(self, db_path: str = "shipwright.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Open database connection and create tables."""
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        logger.info("SQLite repository connected: %s", self._db_path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        assert self._conn is not None
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS backups (
                backup_id TEXT PRIMARY KEY,
                host TEXT NOT NULL,
                created_at TEXT NOT NULL,
                location TEXT NOT NULL,
                kind TEXT NOT NULL,
                deployment_id TEXT,
                size_bytes INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS deployments (
                deployment_id TEXT PRIMARY KEY,
                artifact TEXT NOT NULL,
                grp TEXT NOT NULL,
                strategy TEXT NOT NULL,
                result TEXT NOT NULL,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                aborted_reason TEXT,
                hosts TEXT DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS host_status (
                host TEXT PRIMARY KEY,
                state TEXT NOT NULL,
                health TEXT NOT NULL,
                last_deployment_id TEXT,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS locks (
                lock_key TEXT PRIMARY KEY,
                holder TEXT NOT NULL,
                pid INTEGER NOT NULL,
                machine TEXT NOT NULL,
                acquired_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_backups_host ON backups(host, created_at);
            CREATE INDEX IF NOT EXISTS idx_deployments_group ON deployments(grp, started_at);
        """)

    # -- Backup Catalog ------------------------------------------------------

    def add_backup(self, backup: Backup) -> None:
        assert self._conn is not None
        self._conn.execute(
            """INSERT INTO backups
               (backup_id, host, created_at, location, kind, deployment_id, size_bytes)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (backup.backup_id, backup.host, backup.created_at.isoformat(),
             backup.location, backup.kind.value, backup.deployment_id,
             backup.size_bytes),
        )
        self._conn.commit()

    def get_backup(self, backup_id: str) -> Optional[Backup]:
        assert self._conn is not None
        row = self._conn.execute(
            "SELECT * FROM backups WHERE backup_id = ?", (backup_id,)
        ).fetchone()
        return self._row_to_backup(row) if row else None

    def list_backups(self, host: str) -> list[Backup]:
        """Backups of `host`, newest first."""
        assert self._conn is not None
        rows = self._conn.execute(
            "SELECT * FROM backups WHERE host = ? ORDER BY created_at DESC",
            (host,),
        ).fetchall()
        return [self._row_to_backup(r) for r in rows]

    def backup_hosts(self) -> list[str]:
        assert self._conn is not None
        rows = self._conn.execute(
            "SELECT DISTINCT host FROM backups ORDER BY host"
        ).fetchall()
        return [r["host"] for r in rows]

    def remove_backup(self, backup_id: str) -> None:
        assert self._conn is not None
        self._conn.execute("DELETE FROM backups WHERE backup_id = ?", (backup_id,))
        self._conn.commit()

    @staticmethod
    def _row_to_backup(row: sqlite3.Row) -> Backup:
        return Backup(
            backup_id=row["backup_id"],
            host=row["host"],
            created_at=datetime.fromisoformat(row["created_at"]),
            location=row["location"],
            kind=BackupKind(row["kind"]),
            deployment_id=row["deployment_id"],
            size_bytes=row["size_bytes"],
        )

    # -- Deployments ---------------------------------------------------------

    def save_deployment(self, deployment: Deployment) -> None:
        """Insert or replace a deployment record."""
        assert self._conn is not None
        data = deployment.to_dict()
        self._conn.execute(
            """INSERT OR REPLACE INTO deployments
               (deployment_id, artifact, grp, strategy, result, started_at,
                finished_at, aborted_reason, hosts)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (data["deployment_id"], data["artifact"], data["group"],
             data["strategy"], data["result"], data["started_at"],
             data["finished_at"], data["aborted_reason"],
             json.dumps(data["hosts"])),
        )
        self._conn.commit()
        logger.debug("Saved deployment %s (%s)", deployment.deployment_id, data["result"])

    def get_deployment(self, deployment_id: str) -> Optional[Deployment]:
        assert self._conn is not None
        row = self._conn.execute(
            "SELECT * FROM deployments WHERE deployment_id = ?", (deployment_id,)
        ).fetchone()
        return self._row_to_deployment(row) if row else None

    def list_deployments(
        self, group: Optional[str] = None, limit: int = 20
    ) -> list[Deployment]:
        """Most recent deployments first, optionally filtered by group."""
        assert self._conn is not None
        if group:
            rows = self._conn.execute(
                "SELECT * FROM deployments WHERE grp = ? ORDER BY started_at DESC LIMIT ?",
                (group, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM deployments ORDER BY started_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_deployment(r) for r in rows]

    @staticmethod
    def _row_to_deployment(row: sqlite3.Row) -> Deployment:
        return Deployment.from_dict({
            "deployment_id": row["deployment_id"],
            "artifact": row["artifact"],
            "group": row["grp"],
            "strategy": row["strategy"],
            "result": row["result"],
            "started_at": row["started_at"],
            "finished_at": row["finished_at"],
            "aborted_reason": row["aborted_reason"],
            "hosts": json.loads(row["hosts"] or "[]"),
        })

    # -- Host Status ---------------------------------------------------------

    def update_host_status(
        self,
        host: str,
        state: str,
        health: str,
        deployment_id: Optional[str] = None,
    ) -> None:
        """Upsert a host's status; last_deployment_id only moves on success."""
        assert self._conn is not None
        self._conn.execute(
            """INSERT INTO host_status (host, state, health, last_deployment_id, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(host) DO UPDATE SET
                   state = excluded.state,
                   health = excluded.health,
                   last_deployment_id = COALESCE(excluded.last_deployment_id,
                                                 host_status.last_deployment_id),
                   updated_at = excluded.updated_at""",
            (host, state, health, deployment_id, datetime.now(UTC).isoformat()),
        )
        self._conn.commit()

    def get_host_status(self, host: Optional[str] = None) -> list[dict]:
        assert self._conn is not None
        if host:
            rows = self._conn.execute(
                "SELECT * FROM host_status WHERE host = ?", (host,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM host_status ORDER BY host"
            ).fetchall()
        return [dict(r) for r in rows]

    # -- Locks ---------------------------------------------------------------

    def acquire_lock(self, key: str, holder: str) -> Optional[str]:
        """Insert a lock row; returns the current holder if `key` is taken.

        A row left behind by a process on this machine that no longer runs
        is reclaimed.
        """
        assert self._conn is not None
        for _ in range(2):
            try:
                self._conn.execute(
                    """INSERT INTO locks (lock_key, holder, pid, machine, acquired_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (key, holder, os.getpid(), socket.gethostname(),
                     datetime.now(UTC).isoformat()),
                )
                self._conn.commit()
                return None
            except sqlite3.IntegrityError:
                self._conn.rollback()

            row = self._conn.execute(
                "SELECT * FROM locks WHERE lock_key = ?", (key,)
            ).fetchone()
            if row is None:
                continue
            if not _is_stale(row):
                return f"{row['holder']} (pid {row['pid']} on {row['machine']})"
            logger.warning(
                "Reclaiming lock %s from %s: pid %d is gone", key, row["holder"], row["pid"]
            )
            self._conn.execute(
                "DELETE FROM locks WHERE lock_key = ? AND pid = ?", (key, row["pid"])
            )
            self._conn.commit()
        return "another process"

    def release_lock(self, key: str, holder: str) -> None:
        assert self._conn is not None
        self._conn.execute(
            "DELETE FROM locks WHERE lock_key = ? AND holder = ? AND pid = ?",
            (key, holder, os.getpid()),
        )
        self._conn.commit()

    def list_locks(self) -> list[dict]:
        assert self._conn is not None
        rows = self._conn.execute("SELECT * FROM locks ORDER BY lock_key").fetchall()
        return [dict(r) for r in rows]

    def force_release(self, key: str) -> bool:
        """Operator override for a lock whose holder is gone. True if one was removed."""
        assert self._conn is not None
        cursor = self._conn.execute("DELETE FROM locks WHERE lock_key = ?", (key,))
        self._conn.commit()
        return cursor.rowcount > 0


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _is_stale(row: sqlite3.Row) -> bool:
    return (
        row["machine"] == socket.gethostname()
        and row["pid"] != os.getpid()
        and not _pid_alive(row["pid"])
    )
