"""Backup, restore, retention, monitoring and reporting services."""

from .backups import BackupService, resolve_tier  # noqa: F401
from .monitor import MonitorService  # noqa: F401
from .reports import ReportService, render_text  # noqa: F401
from .restores import RestoreService  # noqa: F401
from .retention import prune_tier  # noqa: F401
