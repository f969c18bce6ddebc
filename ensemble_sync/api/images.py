import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from ensemble_sync.api.deps import envelope, error_envelope, get_storage
from ensemble_sync.schemas.image import UploadResult
from ensemble_sync.services.storage_service import StorageService

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


@router.get("")
async def list_images(storage: StorageService = Depends(get_storage)):
    try:
        images = await storage.list_images()
    except Exception:
        logger.exception("List images failed")
        return error_envelope("Failed to list images", 500)
    return envelope([image.model_dump() for image in images])


@router.post("/upload")
async def upload_image(
    file: Optional[UploadFile] = File(None),
    storage: StorageService = Depends(get_storage),
):
    if file is None:
        return error_envelope("Missing file", 400)

    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        return error_envelope("File size exceeds 50MB limit", 400)

    try:
        url = await storage.save_image(file.filename, data, file.content_type)
    except Exception:
        logger.exception("Upload image failed")
        return error_envelope("Failed to upload image", 500)
    return envelope(UploadResult(url=url).model_dump())


@router.delete("")
async def delete_image(
    name: Optional[str] = None,
    storage: StorageService = Depends(get_storage),
):
    if not name:
        return error_envelope("Missing name", 400)

    try:
        existed = await storage.delete_image(name)
    except Exception:
        logger.exception(f"Delete image '{name}' failed")
        return error_envelope("Failed to delete image", 500)

    if not existed:
        return error_envelope("Image not found", 404)
    logger.info(f"Deleted image {name}")
    return envelope()
