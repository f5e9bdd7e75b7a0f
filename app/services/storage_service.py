"""
services/storage_service.py
---------------------------
S3 object storage.

The storage layer knows nothing about tenants: UploadService builds
company-prefixed keys and checks ownership before calling in here.
boto3 is blocking, so each call runs in a worker thread.
"""

import asyncio

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.exceptions import InternalError
from app.core.logging import get_logger

logger = get_logger(__name__)


class StorageService:
    """put / presigned url / delete against a single bucket."""

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self.bucket = bucket or settings.S3_BUCKET
        self.region = region or settings.AWS_REGION
        self.endpoint_url = endpoint_url or settings.S3_ENDPOINT_URL or None
        self._client = None

    @property
    def client(self):
        # Created lazily so the app boots without AWS configuration.
        if self._client is None:
            if not self.bucket:
                raise InternalError("Object storage is not configured", code="STORAGE_NOT_CONFIGURED")
            config = Config(
                region_name=self.region,
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=10,
                read_timeout=60,
            )
            self._client = boto3.client("s3", config=config, endpoint_url=self.endpoint_url)
            logger.info("S3 client initialised", region=self.region, bucket=self.bucket)
        return self._client

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as exc:
            logger.error("S3 put failed", key=key, error=str(exc))
            raise InternalError("Failed to store file", code="STORAGE_ERROR")
        return await self.signed_url(key)

    async def signed_url(self, key: str, ttl_seconds: int | None = None, download: bool = False) -> str:
        params = {"Bucket": self.bucket, "Key": key}
        if download:
            params["ResponseContentDisposition"] = "attachment"
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=ttl_seconds or settings.S3_PRESIGN_TTL_SECONDS,
            )
        except ClientError as exc:
            logger.error("S3 presign failed", key=key, error=str(exc))
            raise InternalError("Failed to sign file URL", code="STORAGE_ERROR")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            logger.error("S3 delete failed", key=key, error=str(exc))
            raise InternalError("Failed to delete file", code="STORAGE_ERROR")


storage_service = StorageService()
