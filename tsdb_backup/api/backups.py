"""Archives-on-disk API router."""

from typing import Optional

from fastapi import APIRouter, Depends

from tsdb_backup.api.deps import require_config
from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.storage import list_all_archives, list_archives
from tsdb_backup.domain.enums import Tier
from tsdb_backup.schemas.archives import ArchiveInfo

router = APIRouter(prefix="/backups", tags=["backups"])


@router.get("", response_model=list[ArchiveInfo])
def list_backups(
    tier: Optional[Tier] = None,
    config: BackupConfiguration = Depends(require_config),
) -> list[ArchiveInfo]:
    """List the archives currently on disk, newest first.

    Each entry carries its sidecar metadata when the record exists and parses.
    """
    if tier is not None:
        archives = list_archives(config.tier_path(tier), tier)
    else:
        archives = list_all_archives(config)
    return [archive.to_info() for archive in archives]
