import logging

from fastapi import APIRouter, Depends, Request

from ensemble_sync.api.deps import envelope, error_envelope, get_config, get_repository, read_json
from ensemble_sync.errors import StateNotFoundError
from ensemble_sync.services.protocol import validate_state_payload
from ensemble_sync.services.state_store import StateRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/state")
async def get_state(
    repository: StateRepository = Depends(get_repository),
    config=Depends(get_config),
):
    try:
        snapshot = await repository.read(config.live_state_key)
    except StateNotFoundError:
        raise
    except Exception:
        logger.exception("Failed to get presentation state")
        return error_envelope("Failed to retrieve presentation state", 500)
    return envelope(snapshot.to_state().to_wire())


@router.post("/state")
async def set_state(
    request: Request,
    repository: StateRepository = Depends(get_repository),
    config=Depends(get_config),
):
    body = await read_json(request)
    state = validate_state_payload(body, config.slide_arity)

    try:
        stored = await repository.write(config.live_state_key, state)
    except Exception:
        logger.exception("Failed to set presentation state")
        return error_envelope("Failed to update presentation state", 500)

    logger.info(
        f"Live state updated: {len(stored.slides)} slides, "
        f"currentSlideIndex={stored.current_slide_index}"
    )
    return envelope(stored.to_state().to_wire())
