"""Exception hierarchy shared by the services and the CLI."""

from __future__ import annotations

from typing import Sequence


class UsageError(ValueError):
    """Bad invocation detected before any side effect (exit code 2)."""

    exit_code = 2


class ConfigurationError(UsageError):
    """Configuration file missing or invalid."""


class DatabaseError(RuntimeError):
    """A statement against the live or target database failed."""


class CommandError(RuntimeError):
    """A delegated external command exited non-zero."""

    def __init__(
        self,
        name: str,
        argv: Sequence[str],
        returncode: int | None,
        stderr: str = "",
    ) -> None:
        self.name = name
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no stderr"
        super().__init__(f"{name} failed (exit={returncode}): {detail}")


class CommandTimeout(CommandError):
    """A delegated external command exceeded the configured timeout."""

    def __init__(self, name: str, argv: Sequence[str], timeout: float) -> None:
        self.timeout = timeout
        super().__init__(name, argv, None, f"timed out after {timeout:g}s")
