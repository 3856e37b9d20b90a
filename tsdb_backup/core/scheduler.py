"""Schedule binding for the backup tiers and the monitor.

Two ways to run the same entries:
- `render_crontab` emits system crontab lines that call the CLI
- `schedule_jobs` registers them on an in-process `AsyncIOScheduler` (used by
  `tsdb-backup serve`), each tick calling the same service as the CLI
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from typing import List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.errors import ConfigurationError
from tsdb_backup.core.logging import log_event
from tsdb_backup.domain.enums import Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleEntry:
    """One recurring invocation: `cron` expression plus the CLI arguments it runs."""

    name: str
    cron: str
    args: Tuple[str, ...]
    log_file: str

    @property
    def tier(self) -> Optional[Tier]:
        if self.args[0] == "backup":
            return Tier(self.args[1])
        return None


def schedule_entries(config: BackupConfiguration) -> List[ScheduleEntry]:
    entries = [
        ScheduleEntry(
            name=f"backup-{tier.value}",
            cron=config.schedule(tier),
            args=("backup", tier.value),
            log_file="cron-backup.log",
        )
        for tier in Tier
    ]
    entries.append(
        ScheduleEntry(
            name="monitor",
            cron=config.monitor_schedule,
            args=("monitor",),
            log_file="cron-monitor.log",
        )
    )
    return entries


def build_trigger(entry: ScheduleEntry, timezone: str) -> CronTrigger:
    """Parse the entry's crontab expression.

    Raises:
        ConfigurationError: the expression or the timezone is invalid.
    """
    try:
        return CronTrigger.from_crontab(entry.cron, timezone=timezone)
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"invalid schedule for {entry.name}: {entry.cron!r} ({exc})") from exc


def render_crontab(
    config: BackupConfiguration,
    executable: str = "tsdb-backup",
    config_path: Optional[str] = None,
) -> str:
    """Crontab lines for every entry, output appended to `<LOG_DIR>/cron-*.log`."""
    lines = [f"# tsdb-backup schedule for database {config.db_name}"]
    if config.scheduler_timezone:
        lines.append(f"CRON_TZ={config.scheduler_timezone}")
    for entry in schedule_entries(config):
        build_trigger(entry, config.scheduler_timezone)
        argv = [executable]
        if config_path:
            argv += ["--config", config_path]
        argv += list(entry.args)
        command = " ".join(shlex.quote(part) for part in argv)
        log_path = shlex.quote(str(config.log_dir / entry.log_file))
        lines.append(f"{entry.cron} {command} >> {log_path} 2>&1")
    return "\n".join(lines) + "\n"


def get_scheduler(timezone: str = "UTC") -> AsyncIOScheduler:
    """Create the scheduler used by `serve`; a tick never overlaps a running one."""
    scheduler = AsyncIOScheduler(
        timezone=timezone,
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
        },
    )
    log_event(logger, "scheduler_created", timezone=timezone, coalesce=True, max_instances=1)
    return scheduler


async def run_entry(config: BackupConfiguration, entry: ScheduleEntry) -> None:
    """Scheduled tick: run the entry through the same service the CLI uses."""
    from tsdb_backup.services.backups import BackupService
    from tsdb_backup.services.monitor import MonitorService

    log_event(logger, "scheduled_tick", entry=entry.name)
    if entry.tier is not None:
        await BackupService(config).run_backup(entry.tier)
    else:
        await MonitorService(config).check()


def schedule_jobs(scheduler: AsyncIOScheduler, config: BackupConfiguration) -> int:
    """Register every schedule entry; invalid expressions are logged and skipped."""
    log_event(logger, "scheduler_load_jobs_start", entries=len(schedule_entries(config)))

    scheduled_count = 0
    for entry in schedule_entries(config):
        try:
            trigger = build_trigger(entry, config.scheduler_timezone)
        except ConfigurationError as exc:
            log_event(logger, "invalid_cron", level=logging.ERROR, entry=entry.name, cron=entry.cron, error=exc)
            continue

        scheduler.add_job(
            func=run_entry,
            trigger=trigger,
            id=f"entry:{entry.name}",
            name=entry.name,
            replace_existing=True,
            kwargs={"config": config, "entry": entry},
            max_instances=1,
        )
        scheduled_count += 1
        log_event(logger, "job_scheduled", entry=entry.name, cron=entry.cron)

    log_event(logger, "scheduler_load_jobs_done", scheduled=scheduled_count)
    return scheduled_count
