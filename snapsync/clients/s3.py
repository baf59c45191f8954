# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 object store adapter.

Serves both plain S3 (or any S3-compatible endpoint) and Storj through its
S3 gateway; the only difference is the endpoint chosen in configuration.
A client is created per operation via the aiobotocore context manager.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

import aiofiles
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from snapsync.config import SnapSyncConfig
from snapsync.exceptions import StorageError
from snapsync.models import OBJECT_SUFFIX, StoredObject

logger = structlog.get_logger()

MB = 1024 * 1024

# S3 requires parts of at least 5 MiB except the last one
PART_SIZE = 16 * MB

DOWNLOAD_CHUNK = 1 * MB


def _to_mb(size_bytes: int) -> float:
    return size_bytes / MB


class S3ObjectStore:
    """Object store backed by an S3 bucket."""

    def __init__(self, config: SnapSyncConfig, session: Any = None):
        if session is None:
            from aiobotocore.session import get_session

            session = get_session()

        self.bucket = config.bucket
        self._session = session
        self._client_kwargs: Dict[str, Any] = {"region_name": config.region}
        if config.resolved_endpoint_url:
            self._client_kwargs["endpoint_url"] = config.resolved_endpoint_url
        if config.access_key_id:
            self._client_kwargs["aws_access_key_id"] = config.access_key_id
            self._client_kwargs["aws_secret_access_key"] = config.secret_access_key

    def _client(self):
        return self._session.create_client("s3", **self._client_kwargs)

    async def upload(self, key: str, local_path: Path) -> str:
        """
        Upload a local archive.

        Files larger than one part go through a multipart upload that is
        aborted on failure so no orphaned parts are left behind.
        """
        try:
            size = local_path.stat().st_size
        except OSError as e:
            raise StorageError(
                f"Archive not readable: {e}",
                details={"key": key, "path": str(local_path)},
            )

        try:
            async with self._client() as s3_client:
                if size <= PART_SIZE:
                    async with aiofiles.open(local_path, "rb") as f:
                        body = await f.read()
                    await s3_client.put_object(Bucket=self.bucket, Key=key, Body=body)
                else:
                    await self._multipart_upload(s3_client, key, local_path)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to upload object: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

        logger.info("object_uploaded", key=key, size_mb=round(_to_mb(size), 2))
        return key

    async def _multipart_upload(self, s3_client: Any, key: str, local_path: Path) -> None:
        created = await s3_client.create_multipart_upload(Bucket=self.bucket, Key=key)
        upload_id = created["UploadId"]
        parts: List[Dict[str, Any]] = []

        try:
            async with aiofiles.open(local_path, "rb") as f:
                part_number = 1
                while True:
                    chunk = await f.read(PART_SIZE)
                    if not chunk:
                        break
                    response = await s3_client.upload_part(
                        Bucket=self.bucket,
                        Key=key,
                        UploadId=upload_id,
                        PartNumber=part_number,
                        Body=chunk,
                    )
                    parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                    part_number += 1

            await s3_client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except Exception:
            await s3_client.abort_multipart_upload(
                Bucket=self.bucket, Key=key, UploadId=upload_id
            )
            raise

    async def download(self, key: str) -> AsyncIterator[bytes]:
        try:
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    while True:
                        chunk = await stream.read(DOWNLOAD_CHUNK)
                        if not chunk:
                            break
                        yield chunk
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to download object: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

    async def delete(self, key: str) -> None:
        try:
            async with self._client() as s3_client:
                await s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to delete object: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

        logger.info("object_deleted", key=key)

    async def stat(self, key: str) -> StoredObject:
        try:
            async with self._client() as s3_client:
                response = await s3_client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to stat object: {e}",
                details={"key": key, "bucket": self.bucket},
            ) from e

        return StoredObject(
            key=key,
            size=_to_mb(response["ContentLength"]),
            modified=response["LastModified"],
        )

    async def list(self) -> List[StoredObject]:
        """List every backup archive (keys ending in .tar) in the bucket."""
        objects: List[StoredObject] = []

        try:
            async with self._client() as s3_client:
                paginator = s3_client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket):
                    for obj in page.get("Contents", []):
                        if not obj["Key"].endswith(OBJECT_SUFFIX):
                            continue
                        modified: datetime = obj["LastModified"]
                        objects.append(
                            StoredObject(
                                key=obj["Key"],
                                size=_to_mb(obj["Size"]),
                                modified=modified,
                            )
                        )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to list objects: {e}",
                details={"bucket": self.bucket},
            ) from e

        return objects
