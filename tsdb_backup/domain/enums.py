from __future__ import annotations

from enum import Enum


class Tier(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class VerificationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    NOT_RUN = "not_run"


class UploadStatus(str, Enum):
    UPLOADED = "uploaded"
    FAILED = "failed"
    DISABLED = "disabled"


class FailureReason(str, Enum):
    USAGE_ERROR = "usage_error"
    DATABASE_ERROR = "database_error"
    DUMP_FAILED = "dump_failed"
    VERIFICATION_FAILED = "verification_failed"
    RESTORE_FAILED = "restore_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class HealthStatus(str, Enum):
    """Monitor classification, ordered from best to worst."""

    OK = "ok"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNCONFIGURED = "unconfigured"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    HealthStatus.OK: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.CRITICAL: 2,
    HealthStatus.UNCONFIGURED: 3,
}


class LastRunStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"
    NO_LOGS = "NO_LOGS"


# Greppable markers written at the end of every job run; the report reads them back.
SUCCESS_MARKER = "result=success"
FAILURE_MARKER = "result=failure"
