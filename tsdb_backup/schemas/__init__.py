"""Pydantic schemas package.

Public re-exports keep import paths short for the services and API.
"""

from .archives import ArchiveInfo, ArchiveMetadata  # noqa: F401
from .monitor import CheckResult, MonitorReport  # noqa: F401
from .reports import BackupReport, LastRunReport, ReportEntry, StorageUsage, TierReport  # noqa: F401
from .runs import BackupResult, RestoreResult, RetentionResult  # noqa: F401
