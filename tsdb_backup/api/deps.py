"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from tsdb_backup.core.config import BackupConfiguration


def get_config(request: Request) -> Optional[BackupConfiguration]:
    """Configuration loaded at startup, or None when the service is unconfigured."""
    return getattr(request.app.state, "config", None)


def get_config_error(request: Request) -> str:
    return getattr(request.app.state, "config_error", None) or "configuration not loaded"


def require_config(request: Request) -> BackupConfiguration:
    config = get_config(request)
    if config is None:
        raise HTTPException(status_code=503, detail=get_config_error(request))
    return config
