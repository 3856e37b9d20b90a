"""Runner for the delegated PostgreSQL client tools.

`pg_dump` and `pg_restore` run either directly on the host or, when
`CONTAINER_NAME` is configured, inside the database container through
`docker exec`. Every call is bounded by the configured timeout and the child is
killed when the timeout fires or the awaiting task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.errors import CommandError, CommandTimeout

logger = logging.getLogger(__name__)


@dataclass
class CommandOutput:
    returncode: int
    stdout: bytes
    stderr: str


def pg_command(
    config: BackupConfiguration,
    tool: str,
    args: Sequence[str],
    *,
    database: Optional[str] = None,
    connect: bool = True,
) -> List[str]:
    """Build the argv for a PostgreSQL client tool.

    With `connect=False` no connection options are added (e.g. `pg_restore --list`).
    """
    prefix: List[str] = []
    if config.container_name:
        prefix = ["docker", "exec", "-i"]
        if config.db_password and connect:
            prefix += ["-e", "PGPASSWORD"]
        prefix.append(config.container_name)

    conn: List[str] = []
    if connect:
        if config.container_name:
            # Inside the container the tools reach the server over the local socket.
            conn = ["-U", config.db_user]
        else:
            conn = ["-h", config.db_host, "-p", str(config.db_port), "-U", config.db_user]
        if database:
            conn += ["-d", database]
    return [*prefix, tool, *conn, *args]


def pg_env(config: BackupConfiguration) -> Dict[str, str]:
    env = os.environ.copy()
    if config.db_password:
        env["PGPASSWORD"] = config.db_password
    return env


async def run_command(
    argv: Sequence[str],
    *,
    name: str,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    stdout_path: Optional[Path] = None,
) -> CommandOutput:
    """Run `argv` to completion and return its output.

    When `stdout_path` is given, stdout is streamed into that file instead of
    being buffered in memory.

    Raises:
        CommandError: non-zero exit or the executable could not be started.
        CommandTimeout: the command ran longer than `timeout` seconds.
    """
    argv = list(argv)
    logger.debug("command_start | name=%s timeout=%s", name, timeout)

    stdout_fh = open(stdout_path, "wb") if stdout_path is not None else None
    try:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=stdout_fh if stdout_fh is not None else asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            logger.error("command_exec_error | name=%s error=%s", name, exc)
            raise CommandError(name, argv, None, str(exc)) from exc

        try:
            stdout_data, stderr_data = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            logger.error("command_timeout | name=%s timeout=%s", name, timeout)
            raise CommandTimeout(name, argv, timeout or 0) from None
        except asyncio.CancelledError:
            await _kill(proc)
            logger.warning("command_cancelled | name=%s", name)
            raise
    finally:
        if stdout_fh is not None:
            stdout_fh.close()

    stderr_text = (stderr_data or b"").decode(errors="ignore")
    if proc.returncode != 0:
        raise CommandError(name, argv, proc.returncode, stderr_text)
    return CommandOutput(returncode=proc.returncode, stdout=stdout_data or b"", stderr=stderr_text)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
