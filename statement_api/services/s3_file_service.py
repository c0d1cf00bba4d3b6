"""S3FileService provides S3-backed document storage for the app."""

import asyncio
import uuid
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from statement_api.core.errors import StorageError, StorageNotFoundError
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger
from statement_api.services.base import FileStorage

logger = get_logger("statement-api.storage")

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def build_s3_client(settings: Settings) -> Any:
    """Create a boto3 S3 client from the application settings."""
    return boto3.client(
        "s3",
        region_name=settings.aws_region,
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
    )


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3FileService(FileStorage):
    """Service for S3 file operations: put, get, delete, exists, ensure bucket."""

    def __init__(self, settings: Settings, client: Any = None) -> None:
        """Initialize S3FileService and ensure the bucket exists."""
        self.s3 = client if client is not None else build_s3_client(settings)
        self.bucket = settings.s3_bucket
        self.prefix = settings.s3_key_prefix
        self.ensure_bucket()

    def ensure_bucket(self) -> None:
        """Ensure the S3 bucket exists, create if not present."""
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except ClientError:
            logger.info(f"Creating bucket {self.bucket}")
            self.s3.create_bucket(Bucket=self.bucket)

    def new_key(self) -> str:
        """Generate a fresh storage key under the configured prefix."""
        return f"{self.prefix}{uuid.uuid4()}.pdf"

    def put_object(self, data: bytes, content_type: str, original_name: str) -> str:
        """Upload a document under a generated key and return the key."""
        key = self.new_key()
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata={"original-name": original_name.encode("ascii", "ignore").decode()},
            )
        except (ClientError, BotoCoreError) as exc:
            msg = f"Failed to upload document: {exc}"
            raise StorageError(msg, details={"key": key}) from exc
        logger.info(f"Uploaded {len(data)} bytes to {key}")
        return key

    def get_object(self, key: str) -> bytes:
        """Download a document by key."""
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=str(key))
            return obj["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_CODES:
                msg = f"File not found: {key}"
                raise StorageNotFoundError(msg, details={"key": key}) from exc
            msg = f"Failed to download document: {exc}"
            raise StorageError(msg, details={"key": key}) from exc
        except BotoCoreError as exc:
            msg = f"Failed to download document: {exc}"
            raise StorageError(msg, details={"key": key}) from exc

    def delete_object(self, key: str) -> None:
        """Delete a document by key; missing keys are ignored."""
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=str(key))
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_CODES:
                return
            msg = f"Failed to delete document: {exc}"
            raise StorageError(msg, details={"key": key}) from exc
        except BotoCoreError as exc:
            msg = f"Failed to delete document: {exc}"
            raise StorageError(msg, details={"key": key}) from exc

    async def put(self, data: bytes, content_type: str, original_name: str) -> str:
        return await asyncio.to_thread(self.put_object, data, content_type, original_name)

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self.get_object, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.delete_object, key)
