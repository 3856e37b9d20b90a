"""Restore executor: replay an archive into a freshly created database.

The target database is owned by the restore for its whole lifetime. Any
failure after it has been created (extension install, replay, cancellation)
drops it again so no half-populated database is left behind. The live
database is never written.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from tsdb_backup.core.commands import pg_command, pg_env, run_command
from tsdb_backup.core.config import REQUIRED_EXTENSIONS, BackupConfiguration
from tsdb_backup.core.db import Database
from tsdb_backup.core.errors import CommandError, CommandTimeout, DatabaseError, UsageError
from tsdb_backup.core.logging import log_event
from tsdb_backup.core.sidecar import read_sidecar
from tsdb_backup.core.storage import TIMESTAMP_FORMAT
from tsdb_backup.domain.enums import FailureReason, RunStatus
from tsdb_backup.schemas.runs import RestoreResult

logger = logging.getLogger(__name__)

TARGET_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]{0,62}$")

PRE_RESTORE_SQL = "SELECT timescaledb_pre_restore()"
POST_RESTORE_SQL = "SELECT timescaledb_post_restore()"


def _local_now() -> datetime:
    return datetime.now().astimezone()


class RestoreService:
    """Business logic for `restore <archive> [target]`."""

    def __init__(
        self,
        config: BackupConfiguration,
        *,
        database: Optional[Database] = None,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.config = config
        self.db = database or Database(config)
        self.clock = clock

    def derive_target_name(self) -> str:
        return f"{self.config.db_name}_restored_{self.clock().strftime(TIMESTAMP_FORMAT)}"

    def validate_request(self, archive_path: Union[str, Path], target_name: Optional[str]) -> tuple[Path, str]:
        """Check the request before any database mutation.

        Raises:
            UsageError: archive missing, or target name unusable.
        """
        archive = Path(archive_path)
        if not archive.is_file():
            raise UsageError(f"archive not found: {archive}")

        target = target_name or self.derive_target_name()
        if not TARGET_NAME_RE.match(target):
            raise UsageError(f"invalid target database name: {target!r}")
        if target in {self.config.db_name, self.config.maintenance_db}:
            raise UsageError(f"refusing to restore into existing database {target!r}")
        return archive, target

    async def restore(self, archive_path: Union[str, Path], target_name: Optional[str] = None) -> RestoreResult:
        archive, target = self.validate_request(archive_path, target_name)
        log_event(logger, "restore_started", archive=archive, target=target)

        created = False
        try:
            log_event(logger, "restore_create_database", target=target)
            await self.db.create_database(target)
            created = True

            log_event(logger, "restore_install_extensions", target=target, extensions=",".join(REQUIRED_EXTENSIONS))
            await self.db.install_extensions(target, REQUIRED_EXTENSIONS)
            await self.db.execute(PRE_RESTORE_SQL, database=target)

            argv = pg_command(
                self.config,
                "pg_restore",
                ["--jobs", str(self.config.parallel_jobs), str(archive)],
                database=target,
            )
            log_event(logger, "restore_replay_start", target=target, jobs=self.config.parallel_jobs)
            await run_command(argv, name="pg_restore", env=pg_env(self.config), timeout=self.config.timeout)

            await self.db.execute(POST_RESTORE_SQL, database=target)
        except asyncio.CancelledError:
            if created:
                await self._drop_target(target)
            log_event(
                logger,
                "restore_finished",
                level=logging.ERROR,
                result="failure",
                target=target,
                reason=FailureReason.CANCELLED.value,
            )
            raise
        except Exception as exc:
            if isinstance(exc, CommandTimeout):
                reason = FailureReason.TIMEOUT
            elif isinstance(exc, DatabaseError):
                reason = FailureReason.DATABASE_ERROR
            else:
                reason = FailureReason.RESTORE_FAILED
            if not isinstance(exc, (CommandError, DatabaseError, OSError)):
                logger.exception("restore_unexpected_error | target=%s", target)
            dropped = await self._drop_target(target) if created else False
            log_event(
                logger,
                "restore_finished",
                level=logging.ERROR,
                result="failure",
                target=target,
                reason=reason.value,
                dropped=dropped,
                error=exc,
            )
            return RestoreResult(
                archive_path=str(archive),
                target_name=target,
                status=RunStatus.FAILURE,
                reason=reason,
                message=str(exc),
                target_dropped=dropped,
            )

        tables, hypertables = await self.db.count_objects(target)
        expected = read_sidecar(archive)
        result = RestoreResult(
            archive_path=str(archive),
            target_name=target,
            status=RunStatus.SUCCESS,
            message=f"restored into {target}",
            table_count=tables,
            hypertable_count=hypertables,
            expected_table_count=expected.table_count if expected else None,
            expected_hypertable_count=expected.hypertable_count if expected else None,
        )
        # Informational only: a mismatch is reported, never rolled back.
        log_event(
            logger,
            "restore_verification",
            target=target,
            tables=tables,
            hypertables=hypertables,
            expected_tables=result.expected_table_count,
            expected_hypertables=result.expected_hypertable_count,
        )
        log_event(logger, "restore_finished", result="success", target=target, archive=archive)
        return result

    async def _drop_target(self, target: str) -> bool:
        try:
            await self.db.drop_database(target)
        except Exception as exc:
            logger.error("restore_drop_failed | target=%s error=%s", target, exc)
            return False
        log_event(logger, "restore_target_dropped", target=target)
        return True
