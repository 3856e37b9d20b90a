"""Central logging configuration.

- `setup_logging` installs the console handler used by every entry point.
- `attach_job_log` adds the per-component, per-day job log
  (`<log_dir>/<component>-YYYYmmdd.log`) that the monitor and report read back.
- `log_event` emits the `event | k=v ...` lines used throughout the package.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Job-log component -> loggers whose records belong in that component's file.
JOB_LOG_SOURCES: Dict[str, Tuple[str, ...]] = {
    "backup": (
        "tsdb_backup.services.backups",
        "tsdb_backup.services.retention",
        "tsdb_backup.services.uploads",
        "tsdb_backup.services.verify",
        "tsdb_backup.core.commands",
        "tsdb_backup.core.db",
        "tsdb_backup.core.notifier",
    ),
    "restore": (
        "tsdb_backup.services.restores",
        "tsdb_backup.core.commands",
        "tsdb_backup.core.db",
    ),
    "monitor": ("tsdb_backup.services.monitor",),
}

_RESERVED_KEYS = {
    "name",
    "msg",
    "message",
    "asctime",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "args",
}

# Console handler installed by setup_logging, if any.
_console_handler: Optional[logging.Handler] = None


class DailyFileHandler(logging.FileHandler):
    """Append to `<directory>/<component>-YYYYmmdd.log`, switching files at midnight."""

    def __init__(
        self,
        directory: str | os.PathLike[str],
        component: str,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.directory = Path(directory)
        self.component = component
        self._clock = clock
        self.directory.mkdir(parents=True, exist_ok=True)
        self._day = self._clock().strftime("%Y%m%d")
        # Logger name -> level it had before attach_job_log raised it to INFO.
        self.pinned_levels: Dict[str, int] = {}
        super().__init__(self._path_for(self._day), mode="a", encoding="utf-8", delay=True)

    def _path_for(self, day: str) -> str:
        return str(self.directory / f"{self.component}-{day}.log")

    def emit(self, record: logging.LogRecord) -> None:
        day = self._clock().strftime("%Y%m%d")
        if day != self._day:
            self.acquire()
            try:
                if self.stream is not None:
                    self.stream.close()
                    self.stream = None  # type: ignore[assignment]
                self._day = day
                self.baseFilename = os.path.abspath(self._path_for(day))
            finally:
                self.release()
        super().emit(record)


def setup_logging(level: Optional[str] = None) -> None:
    """Initialize console logging.

    - Level is taken from the `LOG_LEVEL` environment variable if not provided.
    - Uses a concise, structured-ish format with timestamps.
    """

    global _console_handler

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root_logger = logging.getLogger()

    # Configure handlers once to avoid duplicates when called again
    if not root_logger.handlers:
        logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        _console_handler = root_logger.handlers[0]

    root_logger.setLevel(log_level)
    # Job-log loggers may sit below the root level; the console still honours LOG_LEVEL.
    if _console_handler is not None:
        _console_handler.setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)

    # SQLAlchemy: only show engine logs when DEBUG is enabled at the root
    sqlalchemy_engine_level = logging.DEBUG if root_logger.level == logging.DEBUG else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_engine_level)


def attach_job_log(component: str, log_dir: str | os.PathLike[str]) -> DailyFileHandler:
    """Route the component's service loggers into its daily job log file.

    The job log always receives INFO and above, whatever `LOG_LEVEL` says, so
    the `result=success` markers read back by the report are never filtered.
    Loggers above INFO are lowered for the lifetime of the handler.
    """
    if component not in JOB_LOG_SOURCES:
        raise KeyError(f"unknown job log component: {component}")
    handler = DailyFileHandler(log_dir, component)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    for name in JOB_LOG_SOURCES[component]:
        source = logging.getLogger(name)
        if source.getEffectiveLevel() > logging.INFO:
            handler.pinned_levels[name] = source.level
            source.setLevel(logging.INFO)
        source.addHandler(handler)
    return handler


def detach_job_log(component: str, handler: logging.Handler) -> None:
    for name in JOB_LOG_SOURCES.get(component, ()):
        logging.getLogger(name).removeHandler(handler)
    for name, level in getattr(handler, "pinned_levels", {}).items():
        logging.getLogger(name).setLevel(level)
    handler.close()


def log_event(logger: logging.Logger, event_name: str, *, level: int = logging.INFO, **fields: object) -> None:
    """Emit a log line with text message and structured context via `extra`.

    The message is a concise 'event | k=v ...' line with keys sorted, and the
    `extra` dict carries the same fields for structured handlers.
    """
    if not fields:
        logger.log(level, "%s", event_name, extra={"event": event_name})
        return

    keys = sorted(fields.keys())
    tmpl = " ".join(f"{k}=%s" for k in keys)
    values = tuple(fields[k] for k in keys)

    # Avoid reserved LogRecord attribute collisions in `extra`
    safe_extra: dict[str, object] = {"event": event_name}
    for k, v in fields.items():
        safe_key = k if k not in _RESERVED_KEYS else f"field_{k}"
        safe_extra[safe_key] = v

    logger.log(level, "%s | " + tmpl, event_name, *values, extra=safe_extra)
