"""Typed results of the backup, retention and restore operations."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from tsdb_backup.domain.enums import (
    FailureReason,
    RunStatus,
    Tier,
    UploadStatus,
    VerificationStatus,
)


class RetentionResult(BaseModel):
    tier: Tier
    retention_days: int
    deleted_paths: List[str] = Field(default_factory=list)
    kept_paths: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def delete_count(self) -> int:
        return len(self.deleted_paths)


class BackupResult(BaseModel):
    """Outcome of one `backup <tier>` invocation."""

    tier: Tier
    status: RunStatus
    reason: Optional[FailureReason] = Field(None, description="Set when status is failure")
    message: Optional[str] = None
    archive_path: Optional[str] = None
    metadata_path: Optional[str] = None
    archive_size_bytes: Optional[int] = None
    verification: VerificationStatus = VerificationStatus.NOT_RUN
    remote_upload: UploadStatus = UploadStatus.DISABLED
    retention: Optional[RetentionResult] = None

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCESS


class RestoreResult(BaseModel):
    """Outcome of one `restore <archive> [target]` invocation."""

    archive_path: str
    target_name: str
    status: RunStatus
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    table_count: Optional[int] = None
    hypertable_count: Optional[int] = None
    expected_table_count: Optional[int] = None
    expected_hypertable_count: Optional[int] = None
    target_dropped: bool = False

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCESS
