"""Backup status report API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from tsdb_backup.api.deps import get_config, get_config_error
from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.schemas.reports import BackupReport
from tsdb_backup.services.reports import ReportService, unconfigured_report

router = APIRouter(tags=["report"])


@router.get("/report", response_model=BackupReport)
def get_report(
    request: Request,
    config: Optional[BackupConfiguration] = Depends(get_config),
) -> BackupReport:
    if config is None:
        return unconfigured_report(get_config_error(request))
    return ReportService(config).build()
