"""Schemas for health monitor results."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from tsdb_backup.domain.enums import HealthStatus


class CheckResult(BaseModel):
    name: str = Field(..., description="Check identifier, e.g. freshness_daily")
    status: HealthStatus
    detail: str = Field("", description="Human-readable explanation")
    value: Optional[float] = Field(None, description="Measured value (age in hours, percent used)")


class MonitorReport(BaseModel):
    status: HealthStatus
    checked_at: datetime
    checks: List[CheckResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == HealthStatus.OK
