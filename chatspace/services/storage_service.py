"""
Media Storage Service for Cloudflare R2 (S3-compatible).

Hosts avatars and message images.
Falls back to local storage (served from /static/uploads) if R2 is not configured.
"""

import os
import asyncio
import uuid
import logging
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from chatspace.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class StorageService:
    """
    Unified storage service that supports both local and cloud (R2/S3) storage.

    If R2 credentials are configured, files are uploaded to the cloud.
    Otherwise, files are stored locally (for development).
    """

    def __init__(self):
        self.upload_dir = Path(settings.upload_dir)
        self.use_cloud = self._is_cloud_configured()

        if self.use_cloud:
            self._init_r2_client()
            logger.info("Storage: Using Cloudflare R2 cloud storage")
        else:
            logger.info("Storage: Using local file storage (R2 not configured)")

    def _is_cloud_configured(self) -> bool:
        """Check if R2/S3 credentials are configured."""
        return bool(
            settings.r2_account_id and
            settings.r2_access_key_id and
            settings.r2_secret_access_key and
            settings.r2_bucket_name
        )

    def _init_r2_client(self):
        """Initialize the R2 (S3-compatible) client."""
        self.s3_client = boto3.client(
            's3',
            endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
            config=Config(
                signature_version='s3v4',
                retries={'max_attempts': 3, 'mode': 'standard'}
            ),
            region_name='auto'
        )
        self.bucket_name = settings.r2_bucket_name
        self.public_url_base = settings.r2_public_url

    @staticmethod
    def build_key(folder: str, extension: str) -> str:
        """Random object key such as 'avatars/3f2a....png'."""
        return f"{folder}/{uuid.uuid4().hex}.{extension}"

    async def upload_image(
        self,
        content: bytes,
        folder: str,
        extension: str,
        content_type: str,
    ) -> Tuple[bool, str]:
        """
        Store image bytes and return where they can be fetched.

        Args:
            content: Raw image bytes (already validated)
            folder: Key prefix, e.g. 'avatars' or 'messages'
            extension: File extension without the dot
            content_type: MIME type of the image

        Returns:
            Tuple of (success: bool, public_url: str)
        """
        key = self.build_key(folder, extension)
        if self.use_cloud:
            return await self._upload_to_r2(content, key, content_type)
        return await self._store_locally(content, key)

    async def _upload_to_r2(
        self,
        content: bytes,
        destination_key: str,
        content_type: str
    ) -> Tuple[bool, str]:
        """Upload bytes to Cloudflare R2."""
        try:
            # boto3 is blocking; keep it off the event loop
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=destination_key,
                Body=content,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 upload failed for {destination_key}: {e}")
            return False, ""

        if self.public_url_base:
            public_url = f"{self.public_url_base.rstrip('/')}/{destination_key}"
        else:
            # Fallback to direct R2 URL (requires public bucket)
            public_url = f"https://{self.bucket_name}.{settings.r2_account_id}.r2.cloudflarestorage.com/{destination_key}"

        logger.info(f"Uploaded to R2: {destination_key}")
        return True, public_url

    async def _store_locally(
        self,
        content: bytes,
        destination_key: str
    ) -> Tuple[bool, str]:
        """Write bytes under the upload dir (development mode)."""
        file_path = self.upload_dir / destination_key
        try:
            os.makedirs(file_path.parent, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error(f"Local upload failed for {destination_key}: {e}")
            return False, ""

        return True, self.get_public_url(destination_key)

    def get_public_url(self, file_key: str) -> str:
        """Public URL for a stored key."""
        if not file_key:
            return ""
        if file_key.startswith('http'):
            return file_key
        if self.use_cloud and self.public_url_base:
            return f"{self.public_url_base.rstrip('/')}/{file_key}"
        return f"{settings.effective_base_url}/static/uploads/{file_key}"


# Singleton instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get or create the storage service singleton."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
