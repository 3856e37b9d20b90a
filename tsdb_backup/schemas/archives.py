"""Schemas for archives and their sidecar metadata records."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tsdb_backup.domain.enums import Tier, UploadStatus, VerificationStatus


class ArchiveMetadata(BaseModel):
    """Sidecar document written next to every archive."""

    tier: Tier = Field(..., description="Backup tier that produced the archive")
    database: str = Field(..., description="Source database name")
    created_at: datetime = Field(..., description="Timestamp embedded in the archive name")
    archive_file: str = Field(..., description="Archive file name (relative to the tier directory)")
    server_version: Optional[str] = Field(None, description="Output of version() at dump time")
    timescaledb_version: Optional[str] = Field(None, description="Installed timescaledb extension version")
    database_size_bytes: Optional[int] = Field(None, description="pg_database_size() at dump time")
    table_count: Optional[int] = Field(None, description="Tables in the public schema")
    hypertable_count: Optional[int] = Field(None, description="Hypertables reported by TimescaleDB")
    archive_size_bytes: Optional[int] = Field(None, description="Size of the finished archive")
    verification: VerificationStatus = Field(VerificationStatus.NOT_RUN, description="Outcome of the list-only check")
    remote_upload: UploadStatus = Field(UploadStatus.DISABLED, description="Outcome of the off-host copy")


class ArchiveInfo(BaseModel):
    """An archive found on disk, with its sidecar when one exists."""

    path: str = Field(..., description="Absolute archive path")
    tier: Tier = Field(..., description="Tier directory the archive lives in")
    size_bytes: int = Field(..., description="File size in bytes")
    modified_at: datetime = Field(..., description="File modification time (UTC)")
    metadata: Optional[ArchiveMetadata] = Field(None, description="Sidecar contents, if readable")
