"""Backup executor: one compressed archive per tier invocation.

Steps, strictly in order:
1. capture descriptive metadata from the live database (read-only)
2. `pg_dump --format=custom` streamed into `<archive>.partial`, renamed on success
3. `pg_restore --list` verification (when enabled)
4. sidecar metadata record
5. retention sweep of the tier directory (always, success or failure)
6. optional S3 copy of archive + sidecar

The executor never retries; a failure is alerted, logged with the failure
marker and returned as a failed `BackupResult`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from tsdb_backup.core.commands import pg_command, pg_env, run_command
from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.db import Database
from tsdb_backup.core.errors import CommandError, CommandTimeout, UsageError
from tsdb_backup.core.logging import log_event
from tsdb_backup.core.notifier import send_failure_email
from tsdb_backup.core.sidecar import write_sidecar
from tsdb_backup.core.storage import PARTIAL_SUFFIX, archive_path
from tsdb_backup.domain.enums import (
    FailureReason,
    RunStatus,
    Tier,
    UploadStatus,
    VerificationStatus,
)
from tsdb_backup.schemas.archives import ArchiveMetadata
from tsdb_backup.schemas.runs import BackupResult, RetentionResult
from tsdb_backup.services.retention import prune_tier
from tsdb_backup.services.uploads import S3Uploader
from tsdb_backup.services.verify import verify_archive

logger = logging.getLogger(__name__)

Notifier = Callable[[BackupConfiguration, str, str], bool]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def resolve_tier(value: Union[Tier, str]) -> Tier:
    """Map user input onto the closed tier set, or raise UsageError."""
    if isinstance(value, Tier):
        return value
    try:
        return Tier(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in Tier)
        raise UsageError(f"invalid tier {value!r}; expected one of: {allowed}") from None


class BackupService:
    """Runs `backup <tier>` against the configured database."""

    def __init__(
        self,
        config: BackupConfiguration,
        *,
        database: Optional[Database] = None,
        uploader: Optional[S3Uploader] = None,
        notifier: Notifier = send_failure_email,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.config = config
        self.db = database or Database(config)
        self.uploader = uploader
        self.notifier = notifier
        self.clock = clock

    async def run_backup(self, tier: Union[Tier, str]) -> BackupResult:
        tier = resolve_tier(tier)
        tier_dir = self.config.tier_path(tier)
        retention_days = self.config.retention_days(tier)

        log_event(logger, "backup_started", tier=tier.value, database=self.config.db_name, path=tier_dir)

        result: Optional[BackupResult] = None
        metadata: Optional[ArchiveMetadata] = None
        try:
            result, metadata = await self._create_archive(tier, tier_dir)
        except asyncio.CancelledError:
            log_event(
                logger,
                "backup_finished",
                level=logging.ERROR,
                result="failure",
                tier=tier.value,
                reason=FailureReason.CANCELLED.value,
            )
            raise
        except Exception as exc:  # Catch-all failures -> mark failed
            logger.exception("backup_unexpected_error | tier=%s", tier.value)
            result = self._failed(tier, FailureReason.DUMP_FAILED, f"{type(exc).__name__}: {exc}")
        finally:
            retention = self._prune(tier, tier_dir, retention_days)
            if result is not None:
                result.retention = retention

        if result.ok and self.config.enable_remote_backup:
            result.remote_upload = await self._upload(result, metadata)

        if result.ok:
            log_event(
                logger,
                "backup_finished",
                result="success",
                tier=tier.value,
                archive=result.archive_path,
                size_bytes=result.archive_size_bytes,
                verification=result.verification.value,
                remote_upload=result.remote_upload.value,
                pruned=result.retention.delete_count if result.retention else 0,
            )
        else:
            self._alert(result)
            log_event(
                logger,
                "backup_finished",
                level=logging.ERROR,
                result="failure",
                tier=tier.value,
                reason=result.reason.value if result.reason else None,
                archive=result.archive_path,
                message=result.message,
            )
        return result

    async def _create_archive(self, tier: Tier, tier_dir: Path) -> Tuple[BackupResult, Optional[ArchiveMetadata]]:
        started = self.clock()
        try:
            tier_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return self._failed(tier, FailureReason.DUMP_FAILED, f"cannot create {tier_dir}: {exc}"), None

        final_path = archive_path(self.config, tier, started)
        while final_path.exists() or Path(f"{final_path}{PARTIAL_SUFFIX}").exists():
            started += timedelta(seconds=1)
            final_path = archive_path(self.config, tier, started)
        partial_path = Path(f"{final_path}{PARTIAL_SUFFIX}")

        snapshot = await self.db.capture_snapshot()
        log_event(
            logger,
            "backup_metadata_captured",
            tier=tier.value,
            tables=snapshot.table_count,
            hypertables=snapshot.hypertable_count,
            size_bytes=snapshot.database_size_bytes,
        )

        argv = pg_command(
            self.config,
            "pg_dump",
            ["--format=custom", f"--compress={self.config.compression_level}"],
            database=self.config.db_name,
        )
        log_event(logger, "backup_dump_start", tier=tier.value, archive=final_path)
        try:
            await run_command(
                argv,
                name="pg_dump",
                env=pg_env(self.config),
                timeout=self.config.timeout,
                stdout_path=partial_path,
            )
            os.replace(partial_path, final_path)
            size = final_path.stat().st_size
        except CommandTimeout as exc:
            return self._failed(tier, FailureReason.TIMEOUT, str(exc), archive=partial_path), None
        except (CommandError, OSError) as exc:
            return self._failed(tier, FailureReason.DUMP_FAILED, str(exc), archive=partial_path), None
        log_event(logger, "backup_dump_done", tier=tier.value, archive=final_path, size_bytes=size)

        verification = VerificationStatus.NOT_RUN
        failure: Optional[Tuple[FailureReason, str]] = None
        if self.config.enable_backup_verification:
            try:
                verification = await verify_archive(self.config, final_path)
            except CommandTimeout as exc:
                verification = VerificationStatus.FAILED
                failure = (FailureReason.TIMEOUT, str(exc))
            if verification == VerificationStatus.FAILED and failure is None:
                failure = (FailureReason.VERIFICATION_FAILED, f"integrity check failed for {final_path.name}")

        metadata = ArchiveMetadata(
            tier=tier,
            database=self.config.db_name,
            created_at=started,
            archive_file=final_path.name,
            server_version=snapshot.server_version,
            timescaledb_version=snapshot.timescaledb_version,
            database_size_bytes=snapshot.database_size_bytes,
            table_count=snapshot.table_count,
            hypertable_count=snapshot.hypertable_count,
            archive_size_bytes=size,
            verification=verification,
        )
        metadata_path = write_sidecar(final_path, metadata)

        if failure is not None:
            # The archive stays on disk for inspection; the run still fails.
            reason, message = failure
            result = self._failed(
                tier,
                reason,
                message,
                archive=final_path,
                metadata=metadata_path,
                size=size,
                verification=verification,
            )
            return result, metadata

        result = BackupResult(
            tier=tier,
            status=RunStatus.SUCCESS,
            message=f"{tier.value} backup completed successfully",
            archive_path=str(final_path),
            metadata_path=str(metadata_path),
            archive_size_bytes=size,
            verification=verification,
        )
        return result, metadata

    def _prune(self, tier: Tier, tier_dir: Path, retention_days: int) -> RetentionResult:
        log_event(logger, "backup_retention_start", tier=tier.value, retention_days=retention_days)
        return prune_tier(tier_dir, tier, retention_days)

    async def _upload(self, result: BackupResult, metadata: Optional[ArchiveMetadata]) -> UploadStatus:
        uploader = self.uploader or S3Uploader(self.config)
        archive = Path(result.archive_path or "")
        # The remote copy of the sidecar records the upload it is part of.
        if metadata is not None:
            write_sidecar(archive, metadata.model_copy(update={"remote_upload": UploadStatus.UPLOADED}))
        status = await uploader.upload([archive, Path(result.metadata_path or "")])
        if metadata is not None and status != UploadStatus.UPLOADED:
            write_sidecar(archive, metadata.model_copy(update={"remote_upload": status}))
        return status

    def _failed(
        self,
        tier: Tier,
        reason: FailureReason,
        message: str,
        *,
        archive: Optional[Path] = None,
        metadata: Optional[Path] = None,
        size: Optional[int] = None,
        verification: VerificationStatus = VerificationStatus.NOT_RUN,
    ) -> BackupResult:
        logger.error("backup_step_failed | tier=%s reason=%s error=%s", tier.value, reason.value, message)
        return BackupResult(
            tier=tier,
            status=RunStatus.FAILURE,
            reason=reason,
            message=message,
            archive_path=str(archive) if archive is not None else None,
            metadata_path=str(metadata) if metadata is not None else None,
            archive_size_bytes=size,
            verification=verification,
        )

    def _alert(self, result: BackupResult) -> None:
        subject = f"TimescaleDB {result.tier.value.capitalize()} Backup Failed"
        body = (
            f"Database: {self.config.db_name}\n"
            f"Tier: {result.tier.value}\n"
            f"Reason: {result.reason.value if result.reason else 'unknown'}\n"
            f"Error: {result.message}\n"
            f"Archive: {result.archive_path or '-'}\n"
            f"Time: {self.clock().isoformat()}\n"
            f"Logs: {self.config.log_dir}\n"
        )
        try:
            self.notifier(self.config, subject, body)
        except Exception:  # noqa: BLE001
            # Never let alert delivery affect the run outcome
            logger.exception("alert_error | tier=%s", result.tier.value)
