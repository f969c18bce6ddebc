import logging
import os
import secrets
import time
from typing import Optional

import aiofiles

from ensemble_sync.schemas.image import ImageFile

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "images"
MAX_LISTED_IMAGES = 1000


class StorageService:
    """Local filesystem blob storage.

    Files are stored under ``storage_dir`` and served by FastAPI via the
    ``/api/files/{path}`` route defined in ``main.py``.
    """

    def __init__(self, storage_dir: str, public_base_url: str = ""):
        self.base_dir = storage_dir
        self.public_base_url = public_base_url.rstrip("/")

    def _full_path(self, key: str) -> str:
        return os.path.join(self.base_dir, key)

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Write *data* to ``{storage_dir}/{key}``."""
        full_path = self._full_path(key)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        async with aiofiles.open(full_path, "wb") as f:
            await f.write(data)
        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {full_path}")
        return key

    def get_url(self, key: str) -> str:
        """Public URL served by FastAPI's static file route."""
        return f"{self.public_base_url}/api/files/{key}"

    async def delete(self, key: str) -> bool:
        """Remove a file from disk. Returns True if it existed."""
        try:
            os.remove(self._full_path(key))
        except FileNotFoundError:
            return False
        return True

    # -- image bucket -------------------------------------------------------

    async def list_images(self) -> list[ImageFile]:
        """Stored images, newest first."""
        directory = os.path.join(self.base_dir, IMAGE_PREFIX)
        if not os.path.isdir(directory):
            return []
        entries = [
            entry for entry in os.scandir(directory)
            if entry.is_file() and not entry.name.startswith(".")
        ]
        entries.sort(key=lambda e: e.stat().st_mtime, reverse=True)
        return [
            ImageFile(name=e.name, url=self.get_url(f"{IMAGE_PREFIX}/{e.name}"))
            for e in entries[:MAX_LISTED_IMAGES]
        ]

    async def save_image(
        self, filename: Optional[str], data: bytes, content_type: Optional[str]
    ) -> str:
        """Store an uploaded image under a fresh unique name and return its URL."""
        name = unique_image_name(filename)
        key = await self.upload(f"{IMAGE_PREFIX}/{name}", data, content_type or "image/jpeg")
        logger.info(f"Uploaded image {name} ({len(data)} bytes)")
        return self.get_url(key)

    async def delete_image(self, name: str) -> bool:
        # Names are single path segments inside the image bucket
        if not name or os.path.basename(name) != name or name in (".", ".."):
            return False
        return await self.delete(f"{IMAGE_PREFIX}/{name}")


def unique_image_name(filename: Optional[str]) -> str:
    """``<millis>-<random>.<ext>``, keeping the upload's extension (default jpg)."""
    ext = "jpg"
    if filename and "." in filename:
        candidate = filename.rsplit(".", 1)[-1].lower()
        if candidate.isalnum():
            ext = candidate
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)}.{ext}"
