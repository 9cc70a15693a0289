"""Private object storage (S3 / MinIO) for reference and generated images.

Buckets are private: nothing public is ever persisted, callers get
time-boxed presigned URLs resolved at read time.
"""

from __future__ import annotations

import asyncio
from functools import cached_property

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from carousel_studio.config import get_settings
from carousel_studio.core.errors import AssetError
from carousel_studio.core.logging import get_logger

logger = get_logger(__name__)


class StorageService:
    """Thin async wrapper over a boto3 S3 client (calls run in a worker thread)."""

    @cached_property
    def client(self):
        settings = get_settings()
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
        )

    async def download(self, bucket: str, path: str) -> bytes:
        def _get() -> bytes:
            response = self.client.get_object(Bucket=bucket, Key=path)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_get)
        except (ClientError, BotoCoreError) as e:
            raise AssetError(f"Download failed for {bucket}/{path}: {e}", kind="download") from e

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("storage_upload_failed", bucket=bucket, path=path, error=str(e))
            raise AssetError(f"Upload failed for {bucket}/{path}: {e}", kind="failed_upload") from e
        logger.debug("storage_uploaded", bucket=bucket, path=path, size=len(data))

    async def sign_url(self, bucket: str, path: str, ttl: int | None = None) -> str:
        expires_in = ttl or get_settings().signed_url_ttl_seconds
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise AssetError(f"Could not sign {bucket}/{path}: {e}", kind="sign") from e


storage_service = StorageService()
