"""Health monitor API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from tsdb_backup.api.deps import get_config, get_config_error
from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.schemas.monitor import MonitorReport
from tsdb_backup.services.monitor import MonitorService, unconfigured_report

router = APIRouter(tags=["monitor"])


@router.get("/monitor", response_model=MonitorReport)
async def run_monitor(
    request: Request,
    response: Response,
    config: Optional[BackupConfiguration] = Depends(get_config),
) -> MonitorReport:
    """Run every health check now. Responds 503 unless the overall status is ok."""
    if config is None:
        report = unconfigured_report(get_config_error(request))
    else:
        report = await MonitorService(config).check()
    response.status_code = 200 if report.ok else 503
    return report
