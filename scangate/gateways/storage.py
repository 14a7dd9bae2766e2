"""Report archive on S3-compatible object storage.

boto3 is blocking, so each call runs in the default thread pool executor.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from scangate.core.config import Settings
from scangate.core.errors import ArchiveError


class ReportStorage:
    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportStorage":
        client = boto3.client(
            "s3",
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            endpoint_url=settings.s3_endpoint_url,
        )
        return cls(client, settings.s3_bucket)

    async def put(self, key: str, body: bytes, metadata: dict[str, str] | None = None) -> None:
        try:
            await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self._client.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=body,
                    ContentType="application/json",
                    Metadata=metadata or {},
                ),
            )
        except (BotoCoreError, ClientError) as exc:
            raise ArchiveError(f"Unable to upload {key}: {exc}") from exc

    async def get(self, key: str) -> bytes:
        def _read() -> bytes:
            obj = self._client.get_object(Bucket=self._bucket, Key=key)
            return obj["Body"].read()

        try:
            return await asyncio.get_running_loop().run_in_executor(None, _read)
        except (BotoCoreError, ClientError) as exc:
            raise ArchiveError(f"Unable to read {key}: {exc}") from exc
