"""Integrity verification: list an archive's table of contents without restoring it."""

from __future__ import annotations

import logging
from pathlib import Path

from tsdb_backup.core.commands import pg_command, pg_env, run_command
from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.errors import CommandError, CommandTimeout
from tsdb_backup.domain.enums import VerificationStatus

logger = logging.getLogger(__name__)


async def verify_archive(config: BackupConfiguration, archive: Path) -> VerificationStatus:
    """Run `pg_restore --list` over `archive`.

    A truncated or corrupt custom-format archive makes pg_restore fail while
    reading the TOC, which is reported as FAILED. Timeouts propagate.
    """
    argv = pg_command(config, "pg_restore", ["--list", str(archive)], connect=False)
    try:
        output = await run_command(argv, name="pg_restore", env=pg_env(config), timeout=config.timeout)
    except CommandTimeout:
        raise
    except CommandError as exc:
        logger.error("archive_verification_failed | archive=%s error=%s", archive, exc)
        return VerificationStatus.FAILED

    entries = sum(1 for line in output.stdout.decode(errors="ignore").splitlines() if line and not line.startswith(";"))
    logger.info("archive_verification_passed | archive=%s toc_entries=%s", archive, entries)
    return VerificationStatus.PASSED
