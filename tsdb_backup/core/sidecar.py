"""Sidecar metadata utilities for backup archives."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from tsdb_backup.schemas.archives import ArchiveMetadata

ARCHIVE_SUFFIX = ".backup"
SIDECAR_SUFFIX = "_metadata.json"

logger = logging.getLogger(__name__)


def sidecar_path(archive_path: str | os.PathLike[str]) -> Path:
    """`<base>.backup` -> `<base>_metadata.json` in the same directory."""
    path = Path(archive_path)
    base = path.name[: -len(ARCHIVE_SUFFIX)] if path.name.endswith(ARCHIVE_SUFFIX) else path.name
    return path.with_name(f"{base}{SIDECAR_SUFFIX}")


def write_sidecar(archive_path: str | os.PathLike[str], metadata: ArchiveMetadata) -> Path:
    """Write the metadata record next to its archive.

    The document is written to a temporary name and renamed into place so a
    reader never sees a half-written record.
    """
    path = sidecar_path(archive_path)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as fh:
        fh.write(metadata.model_dump_json(indent=2))
    os.replace(tmp_path, path)
    logger.debug("backup_sidecar_written | archive=%s sidecar=%s", archive_path, path)
    return path


def read_sidecar(archive_path: str | os.PathLike[str]) -> Optional[ArchiveMetadata]:
    """Read the metadata record of an archive.

    Returns:
        The parsed record, or None when it is missing or unreadable.
    """
    path = sidecar_path(archive_path)
    if not path.exists():
        return None
    try:
        return ArchiveMetadata.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        logger.warning("backup_sidecar_unreadable | sidecar=%s error=%s", path, exc)
        return None
