"""Root conftest for tests directory."""

from __future__ import annotations

import asyncio
import os
import time
import types
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pytest

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.db import DatabaseSnapshot
from tsdb_backup.core.errors import DatabaseError
from tsdb_backup.core.sidecar import write_sidecar
from tsdb_backup.core.storage import TIMESTAMP_FORMAT
from tsdb_backup.domain.enums import Tier
from tsdb_backup.schemas.archives import ArchiveMetadata


class DummyProcess:
    def __init__(self, returncode=0, stdout=b"", stderr=b""):
        self.returncode = returncode
        self._stdout = stdout
        self._stderr = stderr
        self.killed = False

    async def communicate(self):
        return self._stdout, self._stderr

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


class HangingProcess(DummyProcess):
    """Never finishes on its own; used to exercise timeouts and cancellation."""

    def __init__(self):
        super().__init__(returncode=None)

    async def communicate(self):
        await asyncio.Event().wait()


class FakeDatabase:
    """Records every call instead of talking to PostgreSQL.

    `fail_on` names operations ("snapshot", "create", "extensions", "execute",
    "drop", "count") that raise DatabaseError.
    """

    def __init__(self, config: Any = None, *, fail_on: Iterable[str] = (), counts=(3, 2)):
        self.config = config
        self.fail_on = set(fail_on)
        self.counts = counts
        self.calls: list[tuple] = []

    def _record(self, op: str, *args: Any) -> None:
        self.calls.append((op, *args))
        if op in self.fail_on:
            raise DatabaseError(f"{op} failed")

    async def capture_snapshot(self, database: Optional[str] = None) -> DatabaseSnapshot:
        self._record("snapshot", database)
        return DatabaseSnapshot(
            server_version="PostgreSQL 15.4",
            timescaledb_version="2.13.0",
            database_size_bytes=4096,
            table_count=self.counts[0],
            hypertable_count=self.counts[1],
        )

    async def create_database(self, name: str) -> None:
        self._record("create", name)

    async def drop_database(self, name: str) -> None:
        self._record("drop", name)

    async def install_extensions(self, name: str, extensions: Iterable[str]) -> None:
        self._record("extensions", name, tuple(extensions))

    async def execute(self, sql: str, *, database: Optional[str] = None) -> None:
        self._record("execute", database, sql)

    async def count_objects(self, database: Optional[str] = None):
        self._record("count", database)
        return self.counts


@pytest.fixture
def make_config(tmp_path: Path):
    """Factory for a valid configuration rooted in tmp_path; keyword args override config keys."""

    def _make(**overrides: Any) -> BackupConfiguration:
        values: Dict[str, Any] = {
            "DB_NAME": "metrics",
            "BACKUP_BASE_PATH": str(tmp_path / "backups"),
            "LOG_DIR": str(tmp_path / "logs"),
            "COMMAND_TIMEOUT": "30",
        }
        values.update(overrides)
        return BackupConfiguration.model_validate(values)

    return _make


@pytest.fixture
def config(make_config) -> BackupConfiguration:
    return make_config()


@pytest.fixture
def seed_archive():
    """Create an archive file aged `age_days`, optionally with its sidecar."""

    def _seed(
        directory: Path,
        tier: Tier,
        *,
        age_days: float = 0.0,
        database: str = "metrics",
        data: bytes = b"PGDMP-archive",
        sidecar: bool = False,
        table_count: Optional[int] = None,
        hypertable_count: Optional[int] = None,
    ) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        mtime = time.time() - age_days * 86400
        created = datetime.fromtimestamp(mtime)
        path = directory / f"{database}_{tier.value}_{created.strftime(TIMESTAMP_FORMAT)}.backup"
        path.write_bytes(data)
        if sidecar:
            meta = write_sidecar(
                path,
                ArchiveMetadata(
                    tier=tier,
                    database=database,
                    created_at=created.replace(tzinfo=timezone.utc),
                    archive_file=path.name,
                    table_count=table_count,
                    hypertable_count=hypertable_count,
                    archive_size_bytes=len(data),
                ),
            )
            os.utime(meta, (mtime, mtime))
        os.utime(path, (mtime, mtime))
        return path

    return _seed


@pytest.fixture
def fake_exec(monkeypatch: pytest.MonkeyPatch):
    """Replace asyncio.create_subprocess_exec.

    `outcomes[tool] = (returncode, stdout, stderr)` sets the result per tool;
    stdout is written into the target file when the caller streams to one.
    """
    calls: list[list[str]] = []
    outcomes: Dict[str, tuple] = {}
    processes: list[DummyProcess] = []

    async def _exec(*argv, **kwargs):
        calls.append(list(argv))
        tool = argv[0]
        if tool == "docker":
            tool = next(a for a in argv[3:] if a.startswith("pg_"))
        outcome = outcomes.get(tool, (0, b"", b""))
        if callable(outcome):
            proc = outcome()
        else:
            returncode, stdout, stderr = outcome
            target = kwargs.get("stdout")
            if hasattr(target, "write"):
                target.write(stdout)
                stdout = b""
            proc = DummyProcess(returncode=returncode, stdout=stdout, stderr=stderr)
        processes.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _exec)
    return types.SimpleNamespace(calls=calls, outcomes=outcomes, processes=processes)


@pytest.fixture
def fake_disk():
    """shutil.disk_usage replacement reporting `percent` used of a 1000-byte disk."""

    def _make(percent: float):
        used = int(percent * 10)
        return lambda path: types.SimpleNamespace(total=1000, used=used, free=1000 - used)

    return _make


@pytest.fixture
def hanging_process():
    return HangingProcess


@pytest.fixture
def fake_database():
    """The FakeDatabase class; call it with `fail_on=` / `counts=` as needed."""
    return FakeDatabase
