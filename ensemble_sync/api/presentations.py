"""Named presentation snapshots: the same store, addressed by arbitrary ids."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from ensemble_sync.api.deps import envelope, error_envelope, get_config, get_repository, read_json
from ensemble_sync.errors import StateNotFoundError
from ensemble_sync.services.protocol import validate_snapshot_payload
from ensemble_sync.services.state_store import StateRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_presentations(
    id: Optional[str] = None,
    repository: StateRepository = Depends(get_repository),
    config=Depends(get_config),
):
    try:
        if id:
            snapshot = await repository.read(id)
            return envelope(snapshot.to_wire())
        summaries = await repository.list_snapshots(exclude=config.live_state_key)
    except StateNotFoundError:
        return error_envelope("Presentation not found", 404)
    except Exception:
        logger.exception("List/get presentation failed")
        return error_envelope("Failed to fetch presentations", 500)
    return envelope([s.to_wire() for s in summaries])


@router.post("")
async def save_presentation(
    request: Request,
    repository: StateRepository = Depends(get_repository),
    config=Depends(get_config),
):
    body = await read_json(request)
    snapshot_id, state = validate_snapshot_payload(body, config.slide_arity)

    try:
        stored = await repository.write(snapshot_id, state)
    except Exception:
        logger.exception(f"Save presentation '{snapshot_id}' failed")
        return error_envelope("Failed to save presentation", 500)

    logger.info(f"Saved presentation '{snapshot_id}' ({len(stored.slides)} slides)")
    return envelope({"id": stored.id, "updatedAt": stored.to_wire()["updatedAt"]})


@router.delete("")
async def delete_presentation(
    id: Optional[str] = None,
    repository: StateRepository = Depends(get_repository),
    config=Depends(get_config),
):
    if not id:
        return error_envelope("Missing id", 400)
    if id == config.live_state_key:
        return error_envelope("Cannot delete the live presentation state", 400)

    try:
        existed = await repository.delete(id)
    except Exception:
        logger.exception(f"Delete presentation '{id}' failed")
        return error_envelope("Failed to delete presentation", 500)

    if not existed:
        return error_envelope("Presentation not found", 404)
    logger.info(f"Deleted presentation '{id}'")
    return envelope()
