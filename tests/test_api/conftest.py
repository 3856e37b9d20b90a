from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from tsdb_backup.main import create_app


class _DummyScheduler:
    def start(self) -> None:  # noqa: D401
        """No-op start."""
        return None

    def shutdown(self) -> None:  # noqa: D401
        """No-op shutdown."""
        return None


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "backup.conf"
    path.write_text(
        "\n".join(
            [
                'DB_NAME="metrics"',
                f'BACKUP_BASE_PATH="{tmp_path / "backups"}"',
                f'LOG_DIR="{tmp_path / "logs"}"',
                "COMMAND_TIMEOUT=30",
            ]
        )
        + "\n"
    )
    return path


def _client(config_path: str, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    # Stub scheduler to avoid starting real APScheduler in tests
    monkeypatch.setattr("tsdb_backup.main.get_scheduler", lambda timezone: _DummyScheduler(), raising=True)
    monkeypatch.setattr("tsdb_backup.main.schedule_jobs", lambda scheduler, config: 0, raising=True)

    with TestClient(create_app(config_path)) as test_client:
        yield test_client


@pytest.fixture
def client(config_file: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """FastAPI TestClient over a configured archive store in tmp_path."""
    yield from _client(str(config_file), monkeypatch)


@pytest.fixture
def unconfigured_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    yield from _client(str(tmp_path / "missing.conf"), monkeypatch)
