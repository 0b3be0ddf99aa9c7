"""
Media Storage Service
Uploads message media to the Supabase Storage media bucket
"""
from typing import Optional
import logging
import random
import time

import httpx
from supabase import Client

from chat_sync.config import settings
from chat_sync.models.media import UploadResult
from chat_sync.utils.media import DEFAULT_MIME_TYPE, decode_base64_payload, extension_for_mime

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    """Raised when media cannot be decoded, fetched or stored"""
    pass


def generate_media_filename(mime_type: str) -> str:
    """media_<epoch ms>_<9 random chars><ext>"""
    suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=9))
    return f"media_{int(time.time() * 1000)}_{suffix}{extension_for_mime(mime_type)}"


class MediaStorageService:
    """Service for storing message media in Supabase Storage"""

    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        """
        Initialize Media Storage Service

        Args:
            client: Supabase client (if None, the shared service-role client is used)
            bucket: Bucket name (defaults to MEDIA_BUCKET)
        """
        if client is None:
            from chat_sync.services.supabase_client import get_supabase_client
            client = get_supabase_client()
        self.client = client
        self.bucket = bucket or settings.MEDIA_BUCKET

    def upload(self, path: str, content: bytes, mime_type: str) -> UploadResult:
        """
        Upload bytes to the media bucket, overwriting any object at path.

        Raises:
            MediaUploadError: If the upload fails
        """
        try:
            self.client.storage.from_(self.bucket).upload(
                path=path,
                file=content,
                file_options={
                    "content-type": mime_type or DEFAULT_MIME_TYPE,
                    "cache-control": "3600",
                    "upsert": "true"
                }
            )
        except Exception as e:
            logger.error(f"❌ Failed to upload {self.bucket}/{path}: {e}")
            raise MediaUploadError(f"Media upload failed: {str(e)}")

        url = self.public_url(path)
        logger.info(f"✅ Uploaded media to storage: {self.bucket}/{path} ({len(content)} bytes)")
        return UploadResult(path=path, url=url, mime_type=mime_type, size=len(content))

    def public_url(self, path: str) -> str:
        url = self.client.storage.from_(self.bucket).get_public_url(path)
        # Older storage clients return {"publicURL": ...}
        if isinstance(url, dict):
            url = url.get("publicURL") or url.get("publicUrl") or ""
        return url.rstrip("?")

    def upload_base64(self, content: str) -> UploadResult:
        """
        Decode a data URL or raw base64 payload and upload it.

        Raises:
            MediaUploadError: If the payload is not valid base64 or the upload fails
        """
        try:
            data, mime_type = decode_base64_payload(content)
        except ValueError as e:
            raise MediaUploadError(str(e))

        return self.upload(generate_media_filename(mime_type), data, mime_type)

    async def upload_from_url(self, url: str, timeout: Optional[float] = None) -> UploadResult:
        """
        Download remote media and store a copy in the bucket.

        Raises:
            MediaUploadError: If the download or upload fails
        """
        try:
            async with httpx.AsyncClient(timeout=timeout or settings.MEDIA_DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to download media {url}: {e}")
            raise MediaUploadError(f"Media download failed: {str(e)}")

        mime_type = response.headers.get("content-type", DEFAULT_MIME_TYPE).split(";")[0].strip().lower()
        return self.upload(generate_media_filename(mime_type), response.content, mime_type)


# Singleton instance
_storage_service: Optional[MediaStorageService] = None


def get_storage_service(client: Optional[Client] = None) -> MediaStorageService:
    """Get or create MediaStorageService singleton"""
    global _storage_service
    if _storage_service is None:
        _storage_service = MediaStorageService(client)
    return _storage_service
