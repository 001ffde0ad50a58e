"""
Storage for uploaded import files on S3 or the local filesystem.
"""
import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

import aiofiles
import aiofiles.os
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from backfill.core.config import settings
from backfill.core.logging import get_logger

logger = get_logger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


@dataclass(frozen=True)
class DeleteResult:
    success: bool
    error: Optional[str] = None


def get_import_storage_location(import_id: str, filename: str) -> str:
    """Storage key of an uploaded file: ``imports/<import id>/<sanitized name>``."""
    name = re.sub(r"[^A-Za-z0-9._-]", "_", Path(filename or "").name) or "upload.csv"
    return f"imports/{import_id}/{name}"


class ImportStorage:
    """Import file storage client supporting S3 and the local filesystem."""

    def __init__(self, provider: Optional[str] = None, local_storage_path: Optional[str] = None):
        self.provider = (provider or settings.CLOUD_STORAGE_PROVIDER).lower()

        if self.provider == "s3":
            self._init_s3()
        elif self.provider == "local":
            self._init_local(local_storage_path or settings.LOCAL_STORAGE_PATH)
        else:
            raise ValueError(f"Unsupported storage provider: {self.provider}")

    def _init_s3(self):
        """Initialize the S3 client."""
        if not settings.AWS_ACCESS_KEY_ID or not settings.AWS_SECRET_ACCESS_KEY:
            logger.warning("AWS credentials not configured. S3 operations will fail.")
            self.s3_client = None
        else:
            self.s3_client = boto3.client(
                "s3",
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION,
                endpoint_url=settings.S3_ENDPOINT_URL,
            )
        self.bucket_name = settings.S3_BUCKET_NAME

    def _init_local(self, local_storage_path: str):
        """Initialize local filesystem storage."""
        self.local_storage_path = Path(local_storage_path)
        self.local_storage_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local import storage initialized at: {self.local_storage_path}")

    def _require_s3(self):
        if not self.s3_client or not self.bucket_name:
            raise ValueError("S3 client not initialized or bucket name not configured")

    def _local_path(self, location: str) -> Path:
        path = (self.local_storage_path / location).resolve()
        if self.local_storage_path.resolve() not in path.parents:
            raise ValueError(f"Storage location outside of import storage: {location}")
        return path

    async def store(self, location: str, fileobj: BinaryIO, content_type: Optional[str] = None) -> str:
        """
        Copy an uploaded file into storage.

        Args:
            location: Storage key from ``get_import_storage_location``
            fileobj: Readable binary file positioned at its start
            content_type: MIME type of the file

        Returns:
            The storage location
        """
        if self.provider == "s3":
            self._require_s3()
            extra_args = {"ContentType": content_type} if content_type else None
            try:
                # Run synchronous boto3 operation in thread pool
                await asyncio.to_thread(
                    self.s3_client.upload_fileobj,
                    fileobj,
                    self.bucket_name,
                    location,
                    ExtraArgs=extra_args,
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error uploading import file to S3: {e}")
                raise
            logger.info(f"Import file uploaded to s3://{self.bucket_name}/{location}")
            return location

        full_path = self._local_path(location)
        await asyncio.to_thread(full_path.parent.mkdir, parents=True, exist_ok=True)
        async with aiofiles.open(full_path, "wb") as f:
            while True:
                block = await asyncio.to_thread(fileobj.read, COPY_BUFFER_SIZE)
                if not block:
                    break
                await f.write(block)
        logger.info(f"Import file saved to local storage: {full_path}")
        return location

    async def open_stream(self, location: str) -> BinaryIO:
        """
        Open a stored file for sequential reading.

        The caller owns the returned stream and must close it.
        """
        if self.provider == "s3":
            self._require_s3()
            try:
                response = await asyncio.to_thread(
                    self.s3_client.get_object,
                    Bucket=self.bucket_name,
                    Key=location,
                )
            except ClientError as e:
                logger.error(f"Error opening import file from S3 (key={location}): {e}")
                raise
            return response["Body"]

        return await asyncio.to_thread(open, self._local_path(location), "rb")

    async def delete(self, location: str) -> DeleteResult:
        """Delete a stored file, reporting failures instead of raising."""
        try:
            if self.provider == "s3":
                self._require_s3()
                await asyncio.to_thread(
                    self.s3_client.delete_object,
                    Bucket=self.bucket_name,
                    Key=location,
                )
                logger.info(f"Import file deleted from S3: {location}")
                return DeleteResult(success=True)

            full_path = self._local_path(location)
            await aiofiles.os.remove(full_path)
            logger.info(f"Import file deleted from local storage: {full_path}")
            return DeleteResult(success=True)
        except FileNotFoundError:
            return DeleteResult(success=False, error="File not found")
        except (ClientError, BotoCoreError, OSError, ValueError) as e:
            logger.error(f"Error deleting import file {location}: {e}")
            return DeleteResult(success=False, error=str(e))
