"""Voucher image storage on the local upload directory."""

import asyncio
import logging
import secrets
from pathlib import Path
from typing import Optional

from vouchervault.core.errors import ValidationFailed

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
}

FILE_PREFIX = "voucher-"


class ImageStorage:
    def __init__(self, upload_dir: str, public_url: str, max_size: int):
        self.upload_dir = Path(upload_dir)
        self.public_url = public_url.rstrip("/")
        self.max_size = max_size

    def filename_from_url(self, url: Optional[str]) -> Optional[str]:
        """Stored file name for one of our public URLs, None for anything else."""
        if not url:
            return None
        name = url.split("/")[-1].split("?")[0]
        if not name.startswith(FILE_PREFIX) or "/" in name or ".." in name:
            return None
        return name

    async def upload_image(self, data: bytes, content_type: str) -> str:
        extension = CONTENT_TYPE_EXTENSIONS.get(content_type)
        if extension is None:
            raise ValidationFailed(f"Unsupported image type: {content_type}")
        if not data:
            raise ValidationFailed("Image is empty")
        if len(data) > self.max_size:
            raise ValidationFailed("Image is too large")

        name = f"{FILE_PREFIX}{secrets.token_hex(8)}.{extension}"
        path = self.upload_dir / name

        def _write():
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored image %s (%d bytes)", name, len(data))
        return f"{self.public_url}/{name}"

    async def delete_image(self, url: Optional[str]) -> bool:
        """Remove a stored image; missing or foreign URLs are ignored."""
        name = self.filename_from_url(url)
        if name is None:
            logger.debug("Not a stored image, skipping: %s", url)
            return False
        path = self.upload_dir / name
        existed = await asyncio.to_thread(path.exists)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        return existed
