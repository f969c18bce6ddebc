import asyncio
import io
import logging
from typing import Awaitable, Callable

from PIL import Image

from ensemble_sync.errors import SyncError

logger = logging.getLogger(__name__)


def can_decode(data: bytes) -> bool:
    """True when Pillow recognises *data* as an intact image."""
    if not data:
        return False
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except Exception as e:
        logger.debug(f"Image decode failed: {e}")
        return False
    return True


class ImageProbe:
    """Checks that an image URL can be fetched and decoded before it is shown."""

    def __init__(self, fetch: Callable[[str], Awaitable[bytes]]):
        self._fetch = fetch

    async def probe(self, url: str) -> bool:
        try:
            data = await self._fetch(url)
        except SyncError as e:
            logger.info(f"Image fetch failed for {url}: {e.message}")
            return False
        # Decoding is CPU bound; keep it off the event loop
        return await asyncio.to_thread(can_decode, data)
