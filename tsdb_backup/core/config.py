"""Backup configuration store.

The configuration lives in a flat shell-style `KEY="value"` file (the same
format the deployment scripts source), parsed with python-dotenv and validated
with pydantic. It is loaded once per invocation and handed to every service
explicitly; nothing in the package keeps it in a module global.

Resolution order for the file path:
- explicit `--config` argument
- `TSDB_BACKUP_CONFIG` environment variable
- `/opt/timescaledb/backup.conf`
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy.engine import URL

from tsdb_backup.core.errors import ConfigurationError
from tsdb_backup.domain.enums import Tier

DEFAULT_CONFIG_PATH = "/opt/timescaledb/backup.conf"
CONFIG_ENV_VAR = "TSDB_BACKUP_CONFIG"

# Extensions every restore target needs before the archive can be replayed.
REQUIRED_EXTENSIONS = ("timescaledb", "pgcrypto", "uuid-ossp")


class BackupConfiguration(BaseModel):
    """Validated process-wide settings. Field aliases are the config-file keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    # Database
    container_name: Optional[str] = Field(None, alias="CONTAINER_NAME")
    db_name: str = Field(..., alias="DB_NAME", min_length=1)
    db_user: str = Field("postgres", alias="DB_USER", min_length=1)
    db_password: Optional[str] = Field(None, alias="DB_PASSWORD")
    db_host: str = Field("localhost", alias="DB_HOST", min_length=1)
    db_port: int = Field(5432, alias="DB_PORT", ge=1, le=65535)
    maintenance_db: str = Field("postgres", alias="MAINTENANCE_DB", min_length=1)

    # Storage layout
    backup_base_path: Path = Field(..., alias="BACKUP_BASE_PATH")
    daily_backup_path: Optional[Path] = Field(None, alias="DAILY_BACKUP_PATH")
    weekly_backup_path: Optional[Path] = Field(None, alias="WEEKLY_BACKUP_PATH")
    monthly_backup_path: Optional[Path] = Field(None, alias="MONTHLY_BACKUP_PATH")
    log_dir: Path = Field(Path("/opt/timescaledb/logs"), alias="LOG_DIR")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Retention (days)
    daily_retention: int = Field(7, alias="DAILY_RETENTION", gt=0)
    weekly_retention: int = Field(28, alias="WEEKLY_RETENTION", gt=0)
    monthly_retention: int = Field(365, alias="MONTHLY_RETENTION", gt=0)

    # Dump/restore options
    compression_level: int = Field(6, alias="COMPRESSION_LEVEL", ge=0, le=9)
    parallel_jobs: int = Field(2, alias="PARALLEL_JOBS", ge=1)
    command_timeout: float = Field(21600, alias="COMMAND_TIMEOUT", ge=0)
    enable_backup_verification: bool = Field(True, alias="ENABLE_BACKUP_VERIFICATION")

    # Alerts
    enable_email_alerts: bool = Field(False, alias="ENABLE_EMAIL_ALERTS")
    email_recipient: Optional[str] = Field(None, alias="EMAIL_RECIPIENT")

    # Remote copy
    enable_remote_backup: bool = Field(False, alias="ENABLE_REMOTE_BACKUP")
    s3_bucket: Optional[str] = Field(None, alias="S3_BUCKET")
    s3_prefix: str = Field("timescaledb-backups", alias="S3_PREFIX")
    aws_region: str = Field("us-east-1", alias="AWS_REGION")

    # Monitor thresholds
    daily_freshness_hours: float = Field(30, alias="DAILY_FRESHNESS_HOURS", gt=0)
    weekly_freshness_hours: float = Field(168, alias="WEEKLY_FRESHNESS_HOURS", gt=0)
    storage_warning_percent: float = Field(85, alias="STORAGE_WARNING_PERCENT", gt=0, le=100)
    storage_critical_percent: float = Field(95, alias="STORAGE_CRITICAL_PERCENT", gt=0, le=100)

    # Schedules (crontab syntax)
    daily_schedule: str = Field("0 2 * * *", alias="DAILY_SCHEDULE")
    weekly_schedule: str = Field("0 3 * * 0", alias="WEEKLY_SCHEDULE")
    monthly_schedule: str = Field("0 4 1 * *", alias="MONTHLY_SCHEDULE")
    monitor_schedule: str = Field("0 * * * *", alias="MONITOR_SCHEDULE")
    scheduler_timezone: str = Field("UTC", alias="SCHEDULER_TIMEZONE")

    @field_validator(
        "container_name",
        "db_password",
        "email_recipient",
        "s3_bucket",
        "daily_backup_path",
        "weekly_backup_path",
        "monthly_backup_path",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "backup_base_path",
        "daily_backup_path",
        "weekly_backup_path",
        "monthly_backup_path",
        "log_dir",
    )
    @classmethod
    def _must_be_absolute(cls, value: Optional[Path]) -> Optional[Path]:
        if value is not None and not value.is_absolute():
            raise ValueError(f"path must be absolute: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @model_validator(mode="after")
    def _check_consistency(self) -> "BackupConfiguration":
        if self.storage_warning_percent >= self.storage_critical_percent:
            raise ValueError("STORAGE_WARNING_PERCENT must be lower than STORAGE_CRITICAL_PERCENT")
        if self.enable_remote_backup and not self.s3_bucket:
            raise ValueError("ENABLE_REMOTE_BACKUP requires S3_BUCKET")
        return self

    def tier_path(self, tier: Tier) -> Path:
        """Storage directory of a tier (defaults to `<BACKUP_BASE_PATH>/<tier>`)."""
        override = {
            Tier.DAILY: self.daily_backup_path,
            Tier.WEEKLY: self.weekly_backup_path,
            Tier.MONTHLY: self.monthly_backup_path,
        }[tier]
        return override or self.backup_base_path / tier.value

    def retention_days(self, tier: Tier) -> int:
        return {
            Tier.DAILY: self.daily_retention,
            Tier.WEEKLY: self.weekly_retention,
            Tier.MONTHLY: self.monthly_retention,
        }[tier]

    def schedule(self, tier: Tier) -> str:
        return {
            Tier.DAILY: self.daily_schedule,
            Tier.WEEKLY: self.weekly_schedule,
            Tier.MONTHLY: self.monthly_schedule,
        }[tier]

    @property
    def timeout(self) -> Optional[float]:
        """Per-command timeout in seconds, or None when disabled."""
        return self.command_timeout or None

    def database_url(self, database: Optional[str] = None) -> URL:
        """SQLAlchemy URL (asyncpg driver) for the live database or another one on the same server."""
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=database or self.db_name,
        )


def resolve_config_path(explicit: Optional[str] = None) -> Path:
    return Path(explicit or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def load_config(path: Optional[str | os.PathLike[str]] = None) -> BackupConfiguration:
    """Read and validate the configuration file.

    Raises:
        ConfigurationError: the file is missing, unreadable or fails validation.
    """
    config_path = resolve_config_path(str(path) if path is not None else None)
    if not config_path.is_file():
        raise ConfigurationError(f"configuration file not found: {config_path}")

    try:
        raw = dotenv_values(config_path)
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {config_path}: {exc}") from exc

    values: Dict[str, str] = {k: v for k, v in raw.items() if v is not None}
    try:
        return BackupConfiguration.model_validate(values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"invalid configuration {config_path}: {problems}") from exc
