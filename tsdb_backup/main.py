"""FastAPI status API with the in-process backup scheduler."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from tsdb_backup import __version__
from tsdb_backup.api import backups, health, metrics, monitor, report
from tsdb_backup.core.config import load_config
from tsdb_backup.core.errors import ConfigurationError
from tsdb_backup.core.logging import attach_job_log, detach_job_log, setup_logging
from tsdb_backup.core.scheduler import get_scheduler, schedule_jobs

# Job logs for the components the in-process scheduler runs.
SCHEDULED_COMPONENTS = ("backup", "monitor")


def create_app(config_path: Optional[str] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        # Startup
        setup_logging()
        logger = logging.getLogger(__name__)

        app.state.config = None
        app.state.config_error = None
        try:
            app.state.config = load_config(config_path)
        except ConfigurationError as exc:
            # Keep serving: monitor and report answer "unconfigured".
            app.state.config_error = str(exc)
            logger.error("config_load_failed | error=%s", exc)

        job_logs = {}
        scheduler = None
        config = app.state.config
        if config is not None:
            setup_logging(config.log_level)
            for component in SCHEDULED_COMPONENTS:
                job_logs[component] = attach_job_log(component, config.log_dir)
            scheduler = get_scheduler(config.scheduler_timezone)
            schedule_jobs(scheduler, config)
            scheduler.start()
            logger.info("APScheduler started with %s timezone and jobs scheduled", config.scheduler_timezone)

        yield

        # Shutdown
        if scheduler is not None:
            scheduler.shutdown()
            logger.info("APScheduler shutdown")
        for component, handler in job_logs.items():
            detach_job_log(component, handler)

    app = FastAPI(
        title="TimescaleDB Backup API",
        description="Status, health and metrics for tiered TimescaleDB backups",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # Mount health endpoints unversioned for infra probes (/health, /ready)
    app.include_router(health.router)

    app.include_router(monitor.router, prefix="/api/v1")
    app.include_router(report.router, prefix="/api/v1")
    app.include_router(backups.router, prefix="/api/v1")

    # Prometheus metrics (unversioned)
    app.include_router(metrics.router)

    @app.get("/", include_in_schema=False)
    async def root() -> RedirectResponse:
        """Redirect root to Swagger UI."""
        return RedirectResponse(url="/api/docs")

    return app


app = create_app()
