"""Tests for the S3 uploader."""

from __future__ import annotations

from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from tsdb_backup.domain.enums import UploadStatus
from tsdb_backup.services.uploads import S3Uploader


class FakeS3Client:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.uploads: list[tuple[str, str, str]] = []

    def upload_file(self, filename: str, bucket: str, key: str) -> None:
        if self.fail_on and filename.endswith(self.fail_on):
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.uploads.append((filename, bucket, key))


@pytest.fixture
def remote_config(make_config):
    return make_config(ENABLE_REMOTE_BACKUP="true", S3_BUCKET="tsdb-archive", S3_PREFIX="/prod/tsdb/")


def test_key_for_uses_prefix(remote_config) -> None:
    uploader = S3Uploader(remote_config, client=FakeS3Client())
    assert uploader.key_for(Path("/b/daily/metrics_daily_20260101_020000.backup")) == (
        "prod/tsdb/metrics_daily_20260101_020000.backup"
    )


@pytest.mark.asyncio
async def test_upload_all_paths(remote_config, tmp_path: Path) -> None:
    archive = tmp_path / "a.backup"
    meta = tmp_path / "a_metadata.json"
    client = FakeS3Client()

    status = await S3Uploader(remote_config, client=client).upload([archive, meta])

    assert status == UploadStatus.UPLOADED
    assert [u[2] for u in client.uploads] == ["prod/tsdb/a.backup", "prod/tsdb/a_metadata.json"]
    assert all(u[1] == "tsdb-archive" for u in client.uploads)


@pytest.mark.asyncio
async def test_upload_failure_is_reported_not_raised(remote_config, tmp_path: Path) -> None:
    client = FakeS3Client(fail_on=".backup")

    status = await S3Uploader(remote_config, client=client).upload([tmp_path / "a.backup", tmp_path / "a_metadata.json"])

    assert status == UploadStatus.FAILED
    assert client.uploads == []
