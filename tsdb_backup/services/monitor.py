"""Health monitor: read-only checks over the archive store.

Checks:
- freshness_daily / freshness_weekly: newest archive of the tier is younger
  than the configured threshold
- storage: disk usage of the storage root against warning/critical thresholds
- integrity: list-only verification of the newest archive across all tiers

The overall status is the worst individual status. Nothing here writes to the
archive store or the database, so repeated runs give the same answer.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.errors import CommandError
from tsdb_backup.core.logging import log_event
from tsdb_backup.core.storage import latest_archive, list_archives
from tsdb_backup.domain.enums import HealthStatus, Tier, VerificationStatus
from tsdb_backup.schemas.monitor import CheckResult, MonitorReport
from tsdb_backup.services.verify import verify_archive

logger = logging.getLogger(__name__)

Verifier = Callable[[BackupConfiguration, Path], Awaitable[VerificationStatus]]

# Exit code per overall status for the `monitor` command.
EXIT_CODES = {
    HealthStatus.OK: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.CRITICAL: 2,
    HealthStatus.UNCONFIGURED: 3,
}


def worst_status(checks: List[CheckResult]) -> HealthStatus:
    status = HealthStatus.OK
    for check in checks:
        if check.status.severity > status.severity:
            status = check.status
    return status


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _summarize(report: MonitorReport) -> MonitorReport:
    log_event(
        logger,
        "monitor_summary",
        level=logging.INFO if report.ok else logging.WARNING,
        result="success" if report.ok else "failure",
        status=report.status.value,
        checks=len(report.checks),
    )
    return report


def unconfigured_report(reason: str, now: Optional[datetime] = None) -> MonitorReport:
    """Report used when the configuration cannot be loaded."""
    check = CheckResult(name="configuration", status=HealthStatus.UNCONFIGURED, detail=reason)
    log_event(logger, "monitor_check", level=logging.WARNING, check=check.name, status=check.status.value)
    return _summarize(MonitorReport(status=HealthStatus.UNCONFIGURED, checked_at=now or _utc_now(), checks=[check]))


class MonitorService:
    def __init__(
        self,
        config: BackupConfiguration,
        *,
        verifier: Verifier = verify_archive,
        disk_usage: Callable[[Path], Any] = shutil.disk_usage,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.config = config
        self.verifier = verifier
        self.disk_usage = disk_usage
        self.clock = clock

    async def check(self) -> MonitorReport:
        now = self.clock()
        checks = [
            self.check_freshness(Tier.DAILY, self.config.daily_freshness_hours, now),
            self.check_freshness(Tier.WEEKLY, self.config.weekly_freshness_hours, now),
            self.check_storage(),
            await self.check_integrity(),
        ]
        for check in checks:
            log_event(
                logger,
                "monitor_check",
                level=logging.INFO if check.status == HealthStatus.OK else logging.WARNING,
                check=check.name,
                status=check.status.value,
                detail=check.detail,
            )
        return _summarize(MonitorReport(status=worst_status(checks), checked_at=now, checks=checks))

    def check_freshness(self, tier: Tier, threshold_hours: float, now: datetime) -> CheckResult:
        name = f"freshness_{tier.value}"
        archives = list_archives(self.config.tier_path(tier), tier)
        if not archives:
            return CheckResult(name=name, status=HealthStatus.DEGRADED, detail=f"no {tier.value} backups found")

        newest = archives[0]
        age_hours = newest.age_seconds(now) / 3600
        if age_hours < threshold_hours:
            status = HealthStatus.OK
            detail = f"{newest.path.name} is {age_hours:.1f}h old"
        else:
            status = HealthStatus.DEGRADED
            detail = f"{newest.path.name} is {age_hours:.1f}h old (threshold {threshold_hours:g}h)"
        return CheckResult(name=name, status=status, detail=detail, value=round(age_hours, 2))

    def check_storage(self) -> CheckResult:
        root = self.config.backup_base_path
        if not root.is_dir():
            return CheckResult(name="storage", status=HealthStatus.DEGRADED, detail=f"storage root missing: {root}")

        try:
            usage = self.disk_usage(root)
        except OSError as exc:
            return CheckResult(name="storage", status=HealthStatus.DEGRADED, detail=f"cannot stat {root}: {exc}")

        percent = (usage.used / usage.total * 100) if usage.total else 0.0
        if percent >= self.config.storage_critical_percent:
            status = HealthStatus.CRITICAL
        elif percent >= self.config.storage_warning_percent:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.OK
        return CheckResult(
            name="storage",
            status=status,
            detail=f"{percent:.1f}% used on {root}",
            value=round(percent, 2),
        )

    async def check_integrity(self) -> CheckResult:
        newest = latest_archive(self.config)
        if newest is None:
            return CheckResult(name="integrity", status=HealthStatus.DEGRADED, detail="no archive to verify")

        try:
            outcome = await self.verifier(self.config, newest.path)
        except CommandError as exc:
            return CheckResult(name="integrity", status=HealthStatus.CRITICAL, detail=f"{newest.path.name}: {exc}")

        if outcome == VerificationStatus.FAILED:
            return CheckResult(
                name="integrity",
                status=HealthStatus.CRITICAL,
                detail=f"{newest.path.name} failed verification",
            )
        return CheckResult(name="integrity", status=HealthStatus.OK, detail=f"{newest.path.name} verified")
