"""Archive naming and on-disk discovery.

Layout under the storage root:

    <BACKUP_BASE_PATH>/<tier>/<db>_<tier>_<YYYYmmdd_HHMMSS>.backup
    <BACKUP_BASE_PATH>/<tier>/<db>_<tier>_<YYYYmmdd_HHMMSS>_metadata.json

A dump in progress is written as `<archive>.partial` and renamed on success.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.sidecar import ARCHIVE_SUFFIX, read_sidecar
from tsdb_backup.domain.enums import Tier
from tsdb_backup.schemas.archives import ArchiveInfo

PARTIAL_SUFFIX = ".partial"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

_ARCHIVE_RE = re.compile(
    r"^(?P<db>.+)_(?P<tier>daily|weekly|monthly)_(?P<ts>\d{8}_\d{6})" + re.escape(ARCHIVE_SUFFIX) + r"$"
)


@dataclass
class ArchiveFile:
    """An archive file found in a tier directory."""

    path: Path
    tier: Tier
    size_bytes: int
    modified_at: datetime

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.modified_at).total_seconds()

    def to_info(self) -> ArchiveInfo:
        return ArchiveInfo(
            path=str(self.path),
            tier=self.tier,
            size_bytes=self.size_bytes,
            modified_at=self.modified_at,
            metadata=read_sidecar(self.path),
        )


def archive_basename(database: str, tier: Tier, when: datetime) -> str:
    return f"{database}_{tier.value}_{when.strftime(TIMESTAMP_FORMAT)}"


def archive_path(config: BackupConfiguration, tier: Tier, when: datetime) -> Path:
    return config.tier_path(tier) / f"{archive_basename(config.db_name, tier, when)}{ARCHIVE_SUFFIX}"


def parse_archive_name(name: str) -> Optional[tuple[str, Tier, datetime]]:
    """Split an archive file name into (database, tier, timestamp)."""
    match = _ARCHIVE_RE.match(name)
    if not match:
        return None
    when = datetime.strptime(match.group("ts"), TIMESTAMP_FORMAT)
    return match.group("db"), Tier(match.group("tier")), when


def is_tier_archive(name: str, tier: Tier) -> bool:
    parsed = parse_archive_name(name)
    return parsed is not None and parsed[1] == tier


def file_mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def list_archives(tier_dir: Path, tier: Tier) -> List[ArchiveFile]:
    """Archives of `tier` in `tier_dir`, newest first. Missing directory -> []."""
    if not tier_dir.is_dir():
        return []

    found: List[ArchiveFile] = []
    for entry in tier_dir.iterdir():
        if not entry.is_file() or not is_tier_archive(entry.name, tier):
            continue
        try:
            stat = entry.stat()
        except OSError:
            continue
        found.append(
            ArchiveFile(
                path=entry,
                tier=tier,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )
    found.sort(key=lambda a: a.modified_at, reverse=True)
    return found


def list_all_archives(config: BackupConfiguration) -> List[ArchiveFile]:
    archives: List[ArchiveFile] = []
    for tier in Tier:
        archives.extend(list_archives(config.tier_path(tier), tier))
    archives.sort(key=lambda a: a.modified_at, reverse=True)
    return archives


def latest_archive(config: BackupConfiguration) -> Optional[ArchiveFile]:
    """Most recently modified archive across every tier."""
    archives = list_all_archives(config)
    return archives[0] if archives else None


def directory_size(path: Path) -> int:
    total = 0
    if not path.exists():
        return 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError:
                continue
    return total
