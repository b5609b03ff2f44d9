"""
S3 storage backend.

boto3 is synchronous, so every call runs in a worker thread via
asyncio.to_thread to keep the event loop free during large transfers.
"""

import asyncio
import logging
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vidforge.config import Settings
from vidforge.errors import ArtifactNotFoundError, StorageError
from vidforge.services.storage.base import UploadResult, generate_key, validate_key

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


class S3Storage:
    """
    Storage gateway backed by an S3 bucket (or an S3-compatible endpoint).

    Example:
        storage = S3Storage.from_settings(settings)
        url = await storage.signed_url("processed/v1.mp4", ttl=600)
    """

    def __init__(self, bucket: str, region: str, client=None, endpoint_url: str | None = None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Storage":
        client = boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
        return cls(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            client=client,
            endpoint_url=settings.s3_endpoint_url,
        )

    def url_for(self, key: str) -> str:
        validate_key(key)
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def generate_key(self, prefix: str, filename: str) -> str:
        return generate_key(prefix, filename)

    async def put(
        self,
        data: bytes,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        validate_key(key)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 put failed for {key}: {e}", cause=e) from e

        logger.debug(f"Uploaded s3://{self.bucket}/{key} ({len(data)} bytes)")
        return UploadResult(url=self.url_for(key), key=key, size=len(data))

    async def upload_file(
        self,
        path: Path,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        validate_key(key)
        path = Path(path)
        try:
            await asyncio.to_thread(
                self.client.upload_file,
                str(path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type, "Metadata": metadata or {}},
            )
        except (ClientError, BotoCoreError, OSError) as e:
            raise StorageError(f"S3 upload failed for {key}: {e}", cause=e) from e

        size = path.stat().st_size
        logger.debug(f"Uploaded {path.name} to s3://{self.bucket}/{key} ({size} bytes)")
        return UploadResult(url=self.url_for(key), key=key, size=size)

    async def read(self, key: str) -> bytes:
        validate_key(key)
        try:
            response = await asyncio.to_thread(
                self.client.get_object, Bucket=self.bucket, Key=key
            )
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if _is_not_found(e):
                raise ArtifactNotFoundError(f"Object not found: {key}", cause=e) from e
            raise StorageError(f"S3 read failed for {key}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise StorageError(f"S3 read failed for {key}: {e}", cause=e) from e

    async def download(self, key: str, path: Path) -> Path:
        validate_key(key)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            await asyncio.to_thread(self.client.download_file, self.bucket, key, str(target))
        except ClientError as e:
            if _is_not_found(e):
                raise ArtifactNotFoundError(f"Object not found: {key}", cause=e) from e
            raise StorageError(f"S3 download failed for {key}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise StorageError(f"S3 download failed for {key}: {e}", cause=e) from e
        return target

    async def signed_url(self, key: str, ttl: int = 3600) -> str:
        validate_key(key)
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to sign URL for {key}: {e}", cause=e) from e

    async def upload_url(self, key: str, content_type: str, ttl: int = 3600) -> str:
        """Presigned PUT; the client must send the same Content-Type."""
        validate_key(key)
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=ttl,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to sign upload URL for {key}: {e}", cause=e) from e

    async def delete(self, key: str) -> None:
        validate_key(key)
        try:
            # S3 DeleteObject succeeds for missing keys.
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return
            raise StorageError(f"S3 delete failed for {key}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise StorageError(f"S3 delete failed for {key}: {e}", cause=e) from e

    async def copy(self, src: str, dst: str) -> None:
        validate_key(src)
        validate_key(dst)
        try:
            await asyncio.to_thread(
                self.client.copy_object,
                Bucket=self.bucket,
                Key=dst,
                CopySource={"Bucket": self.bucket, "Key": src},
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ArtifactNotFoundError(f"Object not found: {src}", cause=e) from e
            raise StorageError(f"S3 copy failed {src} -> {dst}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise StorageError(f"S3 copy failed {src} -> {dst}: {e}", cause=e) from e

    async def exists(self, key: str) -> bool:
        validate_key(key)
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise StorageError(f"S3 head failed for {key}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise StorageError(f"S3 head failed for {key}: {e}", cause=e) from e
