"""Retention service: age-based pruning of one tier directory.

Policy is purely age-based and evaluated per tier directory: any archive whose
modification age exceeds the tier's window is deleted together with its
sidecar. There is no minimum-count floor, so a tier whose archives all age out
ends up empty.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from tsdb_backup.core.sidecar import ARCHIVE_SUFFIX, SIDECAR_SUFFIX, sidecar_path
from tsdb_backup.core.storage import PARTIAL_SUFFIX, file_mtime, is_tier_archive
from tsdb_backup.domain.enums import Tier
from tsdb_backup.schemas.runs import RetentionResult

logger = logging.getLogger(__name__)


def _is_expired(path: Path, cutoff: datetime) -> bool:
    try:
        return file_mtime(path) < cutoff
    except OSError:
        # Vanished between listing and stat
        return False


def _delete(path: Path, result: RetentionResult) -> None:
    try:
        os.remove(path)
        result.deleted_paths.append(str(path))
        logger.info("retention_file_deleted | path=%s", path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        result.errors.append(f"{path}: {exc}")
        logger.error("retention_delete_failed | path=%s error=%s", path, exc)


def _is_tier_leftover(name: str, tier: Tier) -> bool:
    """Sidecars and partial dumps that belong to `tier`."""
    marker = f"_{tier.value}_"
    if marker not in name:
        return False
    return name.endswith(SIDECAR_SUFFIX) or name.endswith(ARCHIVE_SUFFIX + PARTIAL_SUFFIX)


def prune_tier(
    tier_dir: Path,
    tier: Tier,
    retention_days: int,
    now: Optional[datetime] = None,
) -> RetentionResult:
    """Delete archives (and their sidecars) older than `retention_days`.

    Orphaned sidecars and leftover `.partial` dumps past the window are removed
    as well. A failed deletion is recorded and the sweep continues.
    """
    if retention_days <= 0:
        raise ValueError("retention_days must be positive")

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)
    result = RetentionResult(tier=tier, retention_days=retention_days)

    if not tier_dir.is_dir():
        logger.debug("retention_skip_missing_dir | tier=%s path=%s", tier.value, tier_dir)
        return result

    entries: List[Path] = sorted(p for p in tier_dir.iterdir() if p.is_file())

    for path in entries:
        if not is_tier_archive(path.name, tier):
            continue
        if _is_expired(path, cutoff):
            _delete(path, result)
            meta = sidecar_path(path)
            if meta.exists():
                _delete(meta, result)
        else:
            result.kept_paths.append(str(path))

    for path in entries:
        if not path.exists() or not _is_tier_leftover(path.name, tier):
            continue
        if path.name.endswith(SIDECAR_SUFFIX):
            archive = path.with_name(path.name[: -len(SIDECAR_SUFFIX)] + ARCHIVE_SUFFIX)
            if archive.exists():
                continue
        if _is_expired(path, cutoff):
            _delete(path, result)

    logger.info(
        "retention_applied | tier=%s retention_days=%s keep=%s delete=%s errors=%s",
        tier.value,
        retention_days,
        len(result.kept_paths),
        len(result.deleted_paths),
        len(result.errors),
    )
    return result
