"""Tests for schedule entries, crontab rendering and in-process scheduling."""

from __future__ import annotations

import logging

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tsdb_backup.core.errors import ConfigurationError
from tsdb_backup.core.scheduler import (
    get_scheduler,
    render_crontab,
    run_entry,
    schedule_entries,
    schedule_jobs,
)
from tsdb_backup.domain.enums import Tier


class DummyScheduler:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def add_job(self, **kwargs) -> None:  # type: ignore[no-untyped-def]
        self.calls.append(kwargs)


def test_default_schedule_entries(config) -> None:
    entries = {e.name: e for e in schedule_entries(config)}

    assert entries["backup-daily"].cron == "0 2 * * *"
    assert entries["backup-weekly"].cron == "0 3 * * 0"
    assert entries["backup-monthly"].cron == "0 4 1 * *"
    assert entries["monitor"].cron == "0 * * * *"
    assert entries["backup-weekly"].tier == Tier.WEEKLY
    assert entries["monitor"].tier is None


def test_render_crontab(config) -> None:
    text = render_crontab(config, "/usr/local/bin/tsdb-backup", "/opt/timescaledb/backup.conf")
    lines = [line for line in text.splitlines() if line and not line.startswith("#")]

    assert lines[0] == "CRON_TZ=UTC"
    assert (
        f"0 2 * * * /usr/local/bin/tsdb-backup --config /opt/timescaledb/backup.conf backup daily "
        f">> {config.log_dir / 'cron-backup.log'} 2>&1"
    ) in lines
    monitor_line = lines[-1]
    assert monitor_line.startswith("0 * * * * ")
    assert monitor_line.endswith(f">> {config.log_dir / 'cron-monitor.log'} 2>&1")


def test_render_crontab_rejects_invalid_expression(make_config) -> None:
    config = make_config(WEEKLY_SCHEDULE="61 3 * * 0")
    with pytest.raises(ConfigurationError) as exc:
        render_crontab(config)
    assert "backup-weekly" in str(exc.value)


def test_schedule_jobs_registers_entries(make_config, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="tsdb_backup.core.scheduler")
    config = make_config(MONITOR_SCHEDULE="not a cron")
    scheduler = DummyScheduler()

    count = schedule_jobs(scheduler, config)

    assert count == 3
    assert [c["id"] for c in scheduler.calls] == ["entry:backup-daily", "entry:backup-weekly", "entry:backup-monthly"]
    assert all(c["func"] is run_entry and c["max_instances"] == 1 for c in scheduler.calls)
    assert scheduler.calls[0]["kwargs"]["config"] is config
    assert any("invalid_cron" in r.getMessage() for r in caplog.records)


def test_get_scheduler() -> None:
    scheduler = get_scheduler("UTC")
    assert isinstance(scheduler, AsyncIOScheduler)
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_run_entry_dispatches_to_services(config, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[tuple] = []

    class FakeBackupService:
        def __init__(self, cfg) -> None:
            assert cfg is config

        async def run_backup(self, tier):
            seen.append(("backup", tier))

    class FakeMonitorService:
        def __init__(self, cfg) -> None:
            pass

        async def check(self):
            seen.append(("monitor",))

    monkeypatch.setattr("tsdb_backup.services.backups.BackupService", FakeBackupService)
    monkeypatch.setattr("tsdb_backup.services.monitor.MonitorService", FakeMonitorService)

    for entry in schedule_entries(config):
        await run_entry(config, entry)

    assert seen == [("backup", Tier.DAILY), ("backup", Tier.WEEKLY), ("backup", Tier.MONTHLY), ("monitor",)]
