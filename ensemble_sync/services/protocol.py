"""Write-payload validation for the presentation state sync protocol.

Writes are whole-state replacements. A payload is accepted only when it has
an integer ``currentSlideIndex``, a ``slides`` list, and every slide carries
exactly ``arity`` image reference strings. Anything else is rejected with a
``StateValidationError`` before the store is touched.
"""
from typing import Any

from ensemble_sync.errors import StateValidationError
from ensemble_sync.schemas.presentation import PresentationState, Slide

INVALID_STATE_FORMAT = "Invalid state format"
INVALID_SNAPSHOT_PAYLOAD = "Invalid payload"


def arity_message(arity: int) -> str:
    return f"Each slide must have exactly {arity} images"


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid slide index
    return isinstance(value, int) and not isinstance(value, bool)


def validate_state_payload(body: Any, arity: int) -> PresentationState:
    """Validate a raw JSON body and build the state it describes."""
    if not isinstance(body, dict):
        raise StateValidationError(INVALID_STATE_FORMAT)

    index = body.get("currentSlideIndex")
    raw_slides = body.get("slides")
    if not _is_int(index) or not isinstance(raw_slides, list):
        raise StateValidationError(INVALID_STATE_FORMAT)

    slides = []
    for raw in raw_slides:
        images = raw.get("images") if isinstance(raw, dict) else None
        if not isinstance(images, list) or len(images) != arity:
            raise StateValidationError(arity_message(arity))
        if not all(isinstance(image, str) for image in images):
            raise StateValidationError(INVALID_STATE_FORMAT)
        slides.append(Slide(images=list(images)))

    return PresentationState(slides=slides, current_slide_index=index)


def validate_snapshot_payload(body: Any, arity: int) -> tuple[str, PresentationState]:
    """Validate a named snapshot save: ``{id, slides, currentSlideIndex}``."""
    if not isinstance(body, dict):
        raise StateValidationError(INVALID_SNAPSHOT_PAYLOAD)
    snapshot_id = body.get("id")
    if not isinstance(snapshot_id, str) or not snapshot_id.strip():
        raise StateValidationError(INVALID_SNAPSHOT_PAYLOAD)
    if not _is_int(body.get("currentSlideIndex")) or not isinstance(body.get("slides"), list):
        raise StateValidationError(INVALID_SNAPSHOT_PAYLOAD)
    return snapshot_id.strip(), validate_state_payload(body, arity)
