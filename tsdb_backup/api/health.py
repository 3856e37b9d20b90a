"""Health check API router."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tsdb_backup.api.deps import get_config
from tsdb_backup.core.config import BackupConfiguration

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(config: Optional[BackupConfiguration] = Depends(get_config)) -> JSONResponse:
    """Readiness check endpoint; not ready until a configuration is loaded."""
    if config is None:
        return JSONResponse(status_code=503, content={"status": "unconfigured"})
    return JSONResponse(status_code=200, content={"status": "ready"})
