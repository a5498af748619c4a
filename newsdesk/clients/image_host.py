"""Re-hosts externally hosted images in object storage."""

import asyncio
import hashlib
import logging
import mimetypes
import re
from typing import Optional
from urllib.parse import urlparse

import aiohttp

logger = logging.getLogger(__name__)


class ImageHostClient:
    """Downloads an image and uploads it to a storage bucket.

    Failures never propagate: :meth:`upload_image` returns None and the caller
    keeps the original URL.
    """

    def __init__(
        self,
        storage_url: str,
        bucket: str,
        token: Optional[str] = None,
        public_base_url: Optional[str] = None,
        timeout: float = 20.0,
    ):
        self.storage_url = storage_url.rstrip("/")
        self.bucket = bucket
        self.token = token
        self.public_base_url = (
            public_base_url or f"{self.storage_url}/public/{bucket}"
        ).rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> Optional["ImageHostClient"]:
        if not settings.image_storage_url:
            return None
        return cls(
            storage_url=settings.image_storage_url,
            bucket=settings.image_storage_bucket,
            token=settings.image_storage_token,
            public_base_url=settings.image_public_base_url,
            timeout=settings.image_upload_timeout,
        )

    @staticmethod
    def object_name(source_url: str, label: str, content_type: str) -> str:
        digest = hashlib.sha1(source_url.encode("utf-8")).hexdigest()[:12]
        extension = mimetypes.guess_extension(content_type.split(";")[0].strip()) or ""
        if not extension:
            match = re.search(r"\.(jpe?g|png|gif|webp)$", urlparse(source_url).path, re.I)
            extension = f".{match.group(1).lower()}" if match else ".jpg"
        safe_label = re.sub(r"[^A-Za-z0-9_-]+", "-", label).strip("-") or "image"
        return f"{safe_label}-{digest}{extension}"

    async def upload_image(self, source_url: str, label: str) -> Optional[str]:
        """Copy ``source_url`` into the bucket.

        Args:
            source_url: Image to copy
            label: Human-readable prefix for the stored object

        Returns:
            Public URL of the stored copy, or None on any failure
        """
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(source_url) as response:
                    if response.status != 200:
                        logger.warning(
                            f"Image download failed for {source_url}: HTTP {response.status}"
                        )
                        return None
                    content_type = response.headers.get("Content-Type", "image/jpeg")
                    if not content_type.startswith("image/"):
                        logger.warning(
                            f"Not an image at {source_url}: {content_type}"
                        )
                        return None
                    data = await response.read()

                name = self.object_name(source_url, label, content_type)
                headers = {"Content-Type": content_type, "x-upsert": "true"}
                if self.token:
                    headers["Authorization"] = f"Bearer {self.token}"

                async with session.put(
                    f"{self.storage_url}/object/{self.bucket}/{name}",
                    data=data,
                    headers=headers,
                ) as response:
                    if response.status not in (200, 201):
                        error_text = await response.text()
                        logger.warning(
                            f"Image upload failed for {source_url}: "
                            f"HTTP {response.status} - {error_text[:200]}"
                        )
                        return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Network error re-hosting image {source_url}: {e}")
            return None

        hosted = f"{self.public_base_url}/{name}"
        logger.debug(f"Re-hosted {source_url} as {hosted}")
        return hosted
