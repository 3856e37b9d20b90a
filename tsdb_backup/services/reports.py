"""Read-only status report over the archive store and the backup job logs."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.storage import directory_size, list_archives
from tsdb_backup.domain.enums import FAILURE_MARKER, SUCCESS_MARKER, LastRunStatus, Tier
from tsdb_backup.schemas.reports import BackupReport, LastRunReport, ReportEntry, StorageUsage, TierReport

logger = logging.getLogger(__name__)

# Newest archives listed per tier.
RECENT_LIMITS = {Tier.DAILY: 7, Tier.WEEKLY: 4, Tier.MONTHLY: 12}
LOG_TAIL_LINES = 5
NO_BACKUPS = "No backups found"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def unconfigured_report(reason: str, now: Optional[datetime] = None) -> BackupReport:
    return BackupReport(generated_at=now or _utc_now(), configured=False, error=reason)


def last_run_status(lines: List[str]) -> LastRunStatus:
    """Classify a job log by its last success/failure marker line."""
    for line in reversed(lines):
        if FAILURE_MARKER in line:
            return LastRunStatus.FAILED
        if SUCCESS_MARKER in line:
            return LastRunStatus.SUCCESS
    return LastRunStatus.UNKNOWN


class ReportService:
    def __init__(
        self,
        config: BackupConfiguration,
        *,
        disk_usage: Callable[[Path], Any] = shutil.disk_usage,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.config = config
        self.disk_usage = disk_usage
        self.clock = clock

    def build(self) -> BackupReport:
        report = BackupReport(
            generated_at=self.clock(),
            database=self.config.db_name,
            tiers=[self.tier_report(tier) for tier in Tier],
            storage=self.storage_usage(),
            last_run=self.last_run(),
        )
        logger.debug("report_built | tiers=%s", len(report.tiers))
        return report

    def tier_report(self, tier: Tier) -> TierReport:
        tier_dir = self.config.tier_path(tier)
        archives = list_archives(tier_dir, tier)
        return TierReport(
            tier=tier,
            path=str(tier_dir),
            directory_exists=tier_dir.is_dir(),
            archive_count=len(archives),
            total_bytes=sum(a.size_bytes for a in archives),
            recent=[
                ReportEntry(name=a.path.name, size_bytes=a.size_bytes, modified_at=a.modified_at)
                for a in archives[: RECENT_LIMITS[tier]]
            ],
        )

    def storage_usage(self) -> Optional[StorageUsage]:
        root = self.config.backup_base_path
        if not root.is_dir():
            return None
        try:
            usage = self.disk_usage(root)
        except OSError as exc:
            logger.warning("report_disk_usage_failed | path=%s error=%s", root, exc)
            return None
        return StorageUsage(
            total_bytes=usage.total,
            used_bytes=usage.used,
            free_bytes=usage.free,
            percent_used=round(usage.used / usage.total * 100, 1) if usage.total else 0.0,
            backup_bytes=directory_size(root),
        )

    def last_run(self) -> LastRunReport:
        logs = sorted(self.config.log_dir.glob("backup-*.log")) if self.config.log_dir.is_dir() else []
        if not logs:
            return LastRunReport(status=LastRunStatus.NO_LOGS)

        # Names embed YYYYmmdd, so lexical order is chronological.
        newest = logs[-1]
        try:
            lines = newest.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as exc:
            logger.warning("report_log_unreadable | path=%s error=%s", newest, exc)
            return LastRunReport(status=LastRunStatus.UNKNOWN, log_file=str(newest))
        return LastRunReport(
            status=last_run_status(lines),
            log_file=str(newest),
            tail=lines[-LOG_TAIL_LINES:],
        )


def _human_size(num: float) -> str:
    for unit in ("B", "K", "M", "G", "T"):
        if abs(num) < 1024 or unit == "T":
            return f"{num:.0f}{unit}" if unit == "B" else f"{num:.1f}{unit}"
        num /= 1024
    return f"{num:.1f}T"


def render_text(report: BackupReport) -> str:
    """Plain-text rendering printed by `tsdb-backup report`."""
    lines = [
        "TimescaleDB Backup Report",
        f"Generated: {report.generated_at.isoformat(timespec='seconds')}",
    ]
    if not report.configured:
        lines.append("Status: unconfigured")
        if report.error:
            lines.append(f"Reason: {report.error}")
        return "\n".join(lines) + "\n"

    lines.append(f"Database: {report.database}")
    for tier in report.tiers:
        lines.append("")
        lines.append(f"{tier.tier.value.capitalize()} backups ({tier.path})")
        if not tier.directory_exists:
            lines.append("  Directory does not exist")
            lines.append(f"  {NO_BACKUPS}")
            continue
        if not tier.archive_count:
            lines.append(f"  {NO_BACKUPS}")
            continue
        lines.append(f"  Count: {tier.archive_count}  Total: {_human_size(tier.total_bytes)}")
        for entry in tier.recent:
            stamp = entry.modified_at.strftime("%Y-%m-%d %H:%M")
            lines.append(f"  {stamp}  {_human_size(entry.size_bytes):>8}  {entry.name}")

    lines.append("")
    lines.append("Storage")
    if report.storage is None:
        lines.append("  Storage root not available")
    else:
        s = report.storage
        lines.append(
            f"  Total: {_human_size(s.total_bytes)}  Used: {_human_size(s.used_bytes)}  "
            f"Free: {_human_size(s.free_bytes)}  ({s.percent_used:.1f}% used)"
        )
        lines.append(f"  Backups: {_human_size(s.backup_bytes)}")

    lines.append("")
    last = report.last_run
    if last is None or last.status == LastRunStatus.NO_LOGS:
        lines.append("Last backup run: no logs found")
    else:
        lines.append(f"Last backup run: {last.status.value} ({last.log_file})")
        for line in last.tail:
            lines.append(f"  {line}")
    return "\n".join(lines) + "\n"
