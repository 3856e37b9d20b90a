"""Off-host copy of archives to S3."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.domain.enums import UploadStatus

logger = logging.getLogger(__name__)


class S3Uploader:
    """Copies finished archives and their sidecars to `s3://<bucket>/<prefix>/`."""

    def __init__(self, config: BackupConfiguration, client: Optional[Any] = None) -> None:
        self.bucket = config.s3_bucket or ""
        self.prefix = config.s3_prefix.strip("/")
        self.region = config.aws_region
        self._client = client

    @property
    def client(self) -> Any:
        """Lazy initialization of the S3 client."""
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def key_for(self, path: Path) -> str:
        return f"{self.prefix}/{path.name}" if self.prefix else path.name

    def _upload_one(self, path: Path) -> None:
        self.client.upload_file(str(path), self.bucket, self.key_for(path))

    async def upload(self, paths: Iterable[Path]) -> UploadStatus:
        """Upload every path in order; the first failure stops the copy.

        Failures never raise: the local archive stays the source of truth.
        """
        for path in paths:
            try:
                await asyncio.to_thread(self._upload_one, path)
            except (BotoCoreError, ClientError, OSError) as exc:
                logger.error(
                    "remote_upload_failed | bucket=%s key=%s error=%s",
                    self.bucket,
                    self.key_for(path),
                    exc,
                )
                return UploadStatus.FAILED
            logger.info("remote_upload_done | bucket=%s key=%s", self.bucket, self.key_for(path))
        return UploadStatus.UPLOADED
