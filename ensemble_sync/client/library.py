import logging
import time
from typing import Callable, Optional, Protocol

from ensemble_sync.config import settings
from ensemble_sync.schemas.image import ImageFile, display_name

logger = logging.getLogger(__name__)


class ImageGateway(Protocol):
    async def list_images(self) -> list[ImageFile]: ...

    async def upload_image(self, filename: str, data: bytes, content_type: str = ...) -> str: ...

    async def delete_image(self, name: str) -> None: ...


class ImageLibrary:
    """Client-side cache of the uploaded image listing.

    ``refresh()`` skips the network while the last successful fetch is
    younger than ``refresh_secs``. Failures land in ``error``.
    """

    def __init__(
        self,
        gateway: ImageGateway,
        refresh_secs: float = settings.library_refresh_secs,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._gateway = gateway
        self.refresh_secs = refresh_secs
        self._clock = clock
        self.images: list[ImageFile] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.last_fetched: Optional[float] = None

    async def refresh(self, force: bool = False) -> list[ImageFile]:
        now = self._clock()
        if not force and self.last_fetched is not None and now - self.last_fetched < self.refresh_secs:
            return self.images

        self.is_loading = True
        self.error = None
        try:
            self.images = await self._gateway.list_images()
            self.last_fetched = now
        except Exception as e:
            self.error = getattr(e, "message", None) or "Failed to fetch images"
            logger.warning(f"Image library refresh failed: {self.error}")
        finally:
            self.is_loading = False
        return self.images

    def add(self, image: ImageFile) -> None:
        self.images = [image, *self.images]

    def remove(self, name: str) -> None:
        self.images = [img for img in self.images if img.name != name]

    async def upload(self, filename: str, data: bytes, content_type: str = "image/jpeg") -> Optional[str]:
        try:
            url = await self._gateway.upload_image(filename, data, content_type)
        except Exception as e:
            self.error = getattr(e, "message", None) or "Failed to upload image"
            logger.warning(f"Image upload failed: {self.error}")
            return None
        self.add(ImageFile(name=display_name(url), url=url))
        return url

    async def delete(self, name: str) -> bool:
        try:
            await self._gateway.delete_image(name)
        except Exception as e:
            self.error = getattr(e, "message", None) or "Failed to delete image"
            logger.warning(f"Image delete failed: {self.error}")
            return False
        self.remove(name)
        return True
