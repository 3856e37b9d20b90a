"""Command-line entry point (`tsdb-backup`).

Exit codes:
- backup / restore: 0 success, 1 failure, 2 usage or configuration error
- monitor: 0 ok, 1 degraded, 2 critical, 3 unconfigured
- report: always 0
- 130 when a run is interrupted by SIGINT/SIGTERM
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Awaitable, Iterator, List, Optional, TypeVar

from tsdb_backup import __version__
from tsdb_backup.core.config import BackupConfiguration, load_config, resolve_config_path
from tsdb_backup.core.errors import ConfigurationError, UsageError
from tsdb_backup.core.logging import attach_job_log, detach_job_log, setup_logging
from tsdb_backup.core.scheduler import render_crontab
from tsdb_backup.core.storage import list_all_archives
from tsdb_backup.domain.enums import Tier
from tsdb_backup.schemas.monitor import MonitorReport
from tsdb_backup.services.backups import BackupService
from tsdb_backup.services.monitor import EXIT_CODES, MonitorService
from tsdb_backup.services.monitor import unconfigured_report as unconfigured_monitor_report
from tsdb_backup.services.reports import ReportService, render_text
from tsdb_backup.services.reports import unconfigured_report as unconfigured_backup_report
from tsdb_backup.services.restores import RestoreService

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

RECENT_ARCHIVES_SHOWN = 10


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tsdb-backup", description="Tiered TimescaleDB backup and restore")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        help="Configuration file (default: $TSDB_BACKUP_CONFIG or /opt/timescaledb/backup.conf)",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    backup_parser = subparsers.add_parser("backup", help="Create one archive for a tier and apply retention")
    backup_parser.add_argument("tier", type=str.lower, choices=[tier.value for tier in Tier])

    restore_parser = subparsers.add_parser("restore", help="Restore an archive into a new database")
    restore_parser.add_argument("archive", help="Path to the archive file")
    restore_parser.add_argument("target", nargs="?", help="Target database name (default: <db>_restored_<ts>)")

    monitor_parser = subparsers.add_parser("monitor", help="Check backup freshness, storage and integrity")
    monitor_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    report_parser = subparsers.add_parser("report", help="Summarize archives, storage and the last run")
    report_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    crontab_parser = subparsers.add_parser("crontab", help="Print crontab entries for the schedules")
    crontab_parser.add_argument("--executable", default="tsdb-backup", help="Command cron should invoke")

    serve_parser = subparsers.add_parser("serve", help="Run the status API and the in-process scheduler")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8080)

    return parser


def run_cancellable(awaitable: Awaitable[T]) -> T:
    """Run `awaitable` to completion; SIGINT/SIGTERM cancel it."""

    async def _runner() -> T:
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        installed: List[int] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, task.cancel)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                pass
        try:
            return await awaitable
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    return asyncio.run(_runner())


@contextlib.contextmanager
def job_log(component: str, config: BackupConfiguration) -> Iterator[None]:
    try:
        handler = attach_job_log(component, config.log_dir)
    except OSError as exc:
        logger.error("job_log_unavailable | component=%s log_dir=%s error=%s", component, config.log_dir, exc)
        yield
        return
    try:
        yield
    finally:
        detach_job_log(component, handler)


def _load(args: argparse.Namespace) -> BackupConfiguration:
    config = load_config(args.config)
    setup_logging(config.log_level)
    return config


def cmd_backup(args: argparse.Namespace) -> int:
    config = _load(args)
    with job_log("backup", config):
        result = run_cancellable(BackupService(config).run_backup(args.tier))
    if result.ok:
        print(result.archive_path)
        return EXIT_OK
    print(f"backup failed: {result.message}", file=sys.stderr)
    return EXIT_FAILURE


def _print_recent_archives(config: BackupConfiguration) -> None:
    archives = list_all_archives(config)[:RECENT_ARCHIVES_SHOWN]
    if not archives:
        print(f"No archives found under {config.backup_base_path}", file=sys.stderr)
        return
    print("Most recent archives:", file=sys.stderr)
    for archive in archives:
        print(f"  {archive.path}", file=sys.stderr)


def cmd_restore(args: argparse.Namespace) -> int:
    config = _load(args)
    service = RestoreService(config)
    try:
        archive, target = service.validate_request(args.archive, args.target)
    except UsageError:
        _print_recent_archives(config)
        raise
    with job_log("restore", config):
        result = run_cancellable(service.restore(archive, target))
    if result.ok:
        print(result.target_name)
        return EXIT_OK
    print(f"restore failed: {result.message}", file=sys.stderr)
    return EXIT_FAILURE


def _print_monitor(report: MonitorReport, as_json: bool) -> None:
    if as_json:
        print(report.model_dump_json(indent=2))
        return
    for check in report.checks:
        print(f"[{check.status.value.upper():>12}] {check.name}: {check.detail}")
    print(f"Overall: {report.status.value}")


def cmd_monitor(args: argparse.Namespace) -> int:
    try:
        config = _load(args)
    except ConfigurationError as exc:
        report = unconfigured_monitor_report(str(exc))
    else:
        with job_log("monitor", config):
            report = run_cancellable(MonitorService(config).check())
    _print_monitor(report, args.json)
    return EXIT_CODES[report.status]


def cmd_report(args: argparse.Namespace) -> int:
    try:
        config = _load(args)
    except ConfigurationError as exc:
        report = unconfigured_backup_report(str(exc))
    else:
        report = ReportService(config).build()
    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        sys.stdout.write(render_text(report))
    return EXIT_OK


def cmd_crontab(args: argparse.Namespace) -> int:
    config = _load(args)
    sys.stdout.write(render_crontab(config, args.executable, str(resolve_config_path(args.config))))
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from tsdb_backup.main import create_app

    uvicorn.run(create_app(args.config), host=args.host, port=args.port)
    return EXIT_OK


COMMANDS = {
    "backup": cmd_backup,
    "restore": cmd_restore,
    "monitor": cmd_monitor,
    "report": cmd_report,
    "crontab": cmd_crontab,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    setup_logging()
    try:
        return COMMANDS[args.command](args)
    except UsageError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except asyncio.CancelledError:
        print("interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
