"""Tests for the health monitor."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from tsdb_backup.core.errors import CommandTimeout
from tsdb_backup.domain.enums import HealthStatus, Tier, VerificationStatus
from tsdb_backup.services.monitor import EXIT_CODES, MonitorService, unconfigured_report, worst_status


def _verifier(outcome=VerificationStatus.PASSED, calls=None):
    async def verify(config, path):
        if calls is not None:
            calls.append(path)
        return outcome

    return verify


def _checks(report):
    return {check.name: check.status for check in report.checks}


@pytest.fixture
def healthy_store(config, seed_archive):
    seed_archive(config.tier_path(Tier.DAILY), Tier.DAILY, age_days=0.25)
    seed_archive(config.tier_path(Tier.WEEKLY), Tier.WEEKLY, age_days=2)
    return config


@pytest.mark.asyncio
async def test_healthy_store_is_ok(healthy_store, fake_disk) -> None:
    calls = []
    monitor = MonitorService(healthy_store, verifier=_verifier(calls=calls), disk_usage=fake_disk(40))

    report = await monitor.check()

    assert report.status == HealthStatus.OK
    assert report.ok
    assert _checks(report) == {
        "freshness_daily": HealthStatus.OK,
        "freshness_weekly": HealthStatus.OK,
        "storage": HealthStatus.OK,
        "integrity": HealthStatus.OK,
    }
    # The newest archive across tiers is verified
    assert calls[0].parent == healthy_store.tier_path(Tier.DAILY)


@pytest.mark.asyncio
async def test_empty_tiers_report_freshness_failure(config, fake_disk) -> None:
    config.backup_base_path.mkdir(parents=True)
    monitor = MonitorService(config, verifier=_verifier(), disk_usage=fake_disk(10))

    report = await monitor.check()

    assert report.status == HealthStatus.DEGRADED
    checks = _checks(report)
    assert checks["freshness_daily"] == HealthStatus.DEGRADED
    assert checks["freshness_weekly"] == HealthStatus.DEGRADED
    assert checks["integrity"] == HealthStatus.DEGRADED
    assert checks["storage"] == HealthStatus.OK
    assert EXIT_CODES[report.status] == 1


@pytest.mark.asyncio
async def test_stale_daily_is_degraded(config, seed_archive, fake_disk) -> None:
    seed_archive(config.tier_path(Tier.DAILY), Tier.DAILY, age_days=2)
    seed_archive(config.tier_path(Tier.WEEKLY), Tier.WEEKLY, age_days=1)
    monitor = MonitorService(config, verifier=_verifier(), disk_usage=fake_disk(10))

    report = await monitor.check()

    daily = next(c for c in report.checks if c.name == "freshness_daily")
    assert daily.status == HealthStatus.DEGRADED
    assert daily.value == pytest.approx(48, abs=0.1)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "percent, expected",
    [(84, HealthStatus.OK), (85, HealthStatus.DEGRADED), (94.9, HealthStatus.DEGRADED), (95, HealthStatus.CRITICAL)],
)
async def test_storage_thresholds(healthy_store, fake_disk, percent, expected) -> None:
    monitor = MonitorService(healthy_store, verifier=_verifier(), disk_usage=fake_disk(percent))

    report = await monitor.check()

    assert _checks(report)["storage"] == expected
    assert report.status == expected


@pytest.mark.asyncio
async def test_missing_storage_root_is_degraded(config, fake_disk) -> None:
    report = await MonitorService(config, verifier=_verifier(), disk_usage=fake_disk(1)).check()
    assert _checks(report)["storage"] == HealthStatus.DEGRADED


@pytest.mark.asyncio
async def test_failed_integrity_is_critical(healthy_store, fake_disk) -> None:
    monitor = MonitorService(healthy_store, verifier=_verifier(VerificationStatus.FAILED), disk_usage=fake_disk(10))

    report = await monitor.check()

    assert _checks(report)["integrity"] == HealthStatus.CRITICAL
    assert report.status == HealthStatus.CRITICAL
    assert EXIT_CODES[report.status] == 2


@pytest.mark.asyncio
async def test_integrity_timeout_is_critical(healthy_store, fake_disk) -> None:
    async def slow_verifier(config, path):
        raise CommandTimeout("pg_restore", ["pg_restore", "--list"], 30)

    report = await MonitorService(healthy_store, verifier=slow_verifier, disk_usage=fake_disk(10)).check()

    assert _checks(report)["integrity"] == HealthStatus.CRITICAL


@pytest.mark.asyncio
async def test_monitor_is_idempotent(healthy_store, fake_disk) -> None:
    now = datetime.now(timezone.utc)
    monitor = MonitorService(healthy_store, verifier=_verifier(), disk_usage=fake_disk(50), clock=lambda: now)
    before = sorted(p.name for p in healthy_store.backup_base_path.rglob("*"))

    first = await monitor.check()
    second = await monitor.check()

    assert first == second
    assert sorted(p.name for p in healthy_store.backup_base_path.rglob("*")) == before


@pytest.mark.asyncio
async def test_summary_marker_logged(healthy_store, fake_disk, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="tsdb_backup.services.monitor")

    await MonitorService(healthy_store, verifier=_verifier(), disk_usage=fake_disk(99)).check()

    messages = [r.getMessage() for r in caplog.records]
    assert sum(m.startswith("monitor_check |") for m in messages) == 4
    summary = [m for m in messages if m.startswith("monitor_summary")]
    assert "result=failure" in summary[-1] and "status=critical" in summary[-1]


def test_unconfigured_report() -> None:
    report = unconfigured_report("configuration file not found: /opt/timescaledb/backup.conf")
    assert report.status == HealthStatus.UNCONFIGURED
    assert EXIT_CODES[report.status] == 3
    assert "not found" in report.checks[0].detail


def test_worst_status_ordering() -> None:
    assert worst_status([]) == HealthStatus.OK
    report = unconfigured_report("x")
    assert worst_status(report.checks) == HealthStatus.UNCONFIGURED
