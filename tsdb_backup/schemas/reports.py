"""Schemas for the read-only backup status report."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from tsdb_backup.domain.enums import LastRunStatus, Tier


class ReportEntry(BaseModel):
    name: str
    size_bytes: int
    modified_at: datetime


class TierReport(BaseModel):
    tier: Tier
    path: str
    directory_exists: bool
    archive_count: int = 0
    total_bytes: int = 0
    recent: List[ReportEntry] = Field(default_factory=list)


class StorageUsage(BaseModel):
    total_bytes: int
    used_bytes: int
    free_bytes: int
    percent_used: float
    backup_bytes: int


class LastRunReport(BaseModel):
    status: LastRunStatus
    log_file: Optional[str] = None
    tail: List[str] = Field(default_factory=list)


class BackupReport(BaseModel):
    generated_at: datetime
    configured: bool = True
    error: Optional[str] = Field(None, description="Why the report is incomplete, e.g. missing configuration")
    database: Optional[str] = None
    tiers: List[TierReport] = Field(default_factory=list)
    storage: Optional[StorageUsage] = None
    last_run: Optional[LastRunReport] = None
