"""Tests for the restore executor."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from tsdb_backup.core.config import REQUIRED_EXTENSIONS
from tsdb_backup.core.errors import UsageError
from tsdb_backup.domain.enums import FailureReason, Tier
from tsdb_backup.services.restores import POST_RESTORE_SQL, PRE_RESTORE_SQL, RestoreService


@pytest.fixture
def archive(config, seed_archive) -> Path:
    return seed_archive(
        config.tier_path(Tier.DAILY),
        Tier.DAILY,
        age_days=1,
        sidecar=True,
        table_count=3,
        hypertable_count=2,
    )


@pytest.mark.asyncio
async def test_missing_archive_is_usage_error_without_db_calls(config, fake_database, fake_exec, tmp_path) -> None:
    db = fake_database(config)
    with pytest.raises(UsageError):
        await RestoreService(config, database=db).restore(tmp_path / "nope.backup")
    assert db.calls == []
    assert fake_exec.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["1starts_with_digit", "has space", "semi;colon", "x" * 64, "metrics", "postgres"])
async def test_invalid_target_name_is_usage_error(config, fake_database, archive, target) -> None:
    db = fake_database(config)
    with pytest.raises(UsageError):
        await RestoreService(config, database=db).restore(archive, target)
    assert db.calls == []


def test_default_target_name(config) -> None:
    service = RestoreService(config, clock=lambda: datetime(2026, 5, 4, 3, 2, 1))
    assert service.derive_target_name() == "metrics_restored_20260504_030201"


@pytest.mark.asyncio
async def test_successful_restore_sequence(config, fake_database, fake_exec, archive) -> None:
    db = fake_database(config)

    result = await RestoreService(config, database=db).restore(archive, "metrics_check")

    assert result.ok
    assert result.target_name == "metrics_check"
    assert db.calls == [
        ("create", "metrics_check"),
        ("extensions", "metrics_check", REQUIRED_EXTENSIONS),
        ("execute", "metrics_check", PRE_RESTORE_SQL),
        ("execute", "metrics_check", POST_RESTORE_SQL),
        ("count", "metrics_check"),
    ]
    (argv,) = fake_exec.calls
    assert argv[0] == "pg_restore"
    assert argv[argv.index("-d") + 1] == "metrics_check"
    assert argv[argv.index("--jobs") + 1] == "2"
    assert argv[-1] == str(archive)
    # Counts match the sidecar recorded at dump time
    assert (result.table_count, result.hypertable_count) == (3, 2)
    assert (result.expected_table_count, result.expected_hypertable_count) == (3, 2)


@pytest.mark.asyncio
async def test_count_mismatch_is_informational(config, fake_database, fake_exec, archive) -> None:
    db = fake_database(config, counts=(1, 0))

    result = await RestoreService(config, database=db).restore(archive, "metrics_check")

    assert result.ok
    assert result.table_count == 1
    assert result.expected_table_count == 3
    assert ("drop", "metrics_check") not in db.calls


@pytest.mark.asyncio
async def test_replay_failure_drops_target(config, fake_database, fake_exec, archive) -> None:
    fake_exec.outcomes["pg_restore"] = (1, b"", b"pg_restore: error: could not execute query\n")
    db = fake_database(config)

    result = await RestoreService(config, database=db).restore(archive, "metrics_check")

    assert not result.ok
    assert result.reason == FailureReason.RESTORE_FAILED
    assert result.target_dropped is True
    assert db.calls[-1] == ("drop", "metrics_check")
    # Only the restore target was ever touched
    assert all(call[1] == "metrics_check" for call in db.calls)


@pytest.mark.asyncio
async def test_extension_failure_drops_target(config, fake_database, fake_exec, archive) -> None:
    db = fake_database(config, fail_on={"extensions"})

    result = await RestoreService(config, database=db).restore(archive, "metrics_check")

    assert result.reason == FailureReason.DATABASE_ERROR
    assert result.target_dropped is True
    assert fake_exec.calls == []


@pytest.mark.asyncio
async def test_unexpected_error_drops_target(config, fake_database, fake_exec, archive, monkeypatch) -> None:
    db = fake_database(config)

    async def _broken_extensions(name, extensions):
        db.calls.append(("extensions", name))
        raise RuntimeError("unexpected driver error")

    monkeypatch.setattr(db, "install_extensions", _broken_extensions)

    result = await RestoreService(config, database=db).restore(archive, "metrics_check")

    assert not result.ok
    assert result.reason == FailureReason.RESTORE_FAILED
    assert "unexpected driver error" in result.message
    assert result.target_dropped is True
    assert db.calls == [("create", "metrics_check"), ("extensions", "metrics_check"), ("drop", "metrics_check")]
    assert fake_exec.calls == []


@pytest.mark.asyncio
async def test_create_failure_does_not_drop_foreign_database(config, fake_database, archive) -> None:
    db = fake_database(config, fail_on={"create"})

    result = await RestoreService(config, database=db).restore(archive, "already_there")

    assert result.reason == FailureReason.DATABASE_ERROR
    assert result.target_dropped is False
    assert ("drop", "already_there") not in db.calls


@pytest.mark.asyncio
async def test_cancellation_drops_target(config, fake_database, fake_exec, hanging_process, archive) -> None:
    fake_exec.outcomes["pg_restore"] = hanging_process
    db = fake_database(config)
    task = asyncio.create_task(RestoreService(config, database=db).restore(archive, "metrics_check"))
    while not fake_exec.processes:
        await asyncio.sleep(0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert fake_exec.processes[0].killed is True
    assert db.calls[-1] == ("drop", "metrics_check")
