"""Pure slide-deck transitions used by the control client.

Each function takes the current state and returns the full replacement
state to send, or ``None`` when the action's precondition does not hold
(the caller then issues no write at all).
"""
from typing import Optional, Sequence

from ensemble_sync.schemas.presentation import PresentationState, Slide


def _state(slides: list[Slide], index: int) -> PresentationState:
    return PresentationState(slides=slides, current_slide_index=index)


def go_to_slide(state: PresentationState, index: int) -> Optional[PresentationState]:
    if not 0 <= index < len(state.slides):
        return None
    return _state(list(state.slides), index)


def next_slide(state: PresentationState) -> Optional[PresentationState]:
    if state.current_slide_index >= len(state.slides) - 1:
        return None
    return go_to_slide(state, state.current_slide_index + 1)


def prev_slide(state: PresentationState) -> Optional[PresentationState]:
    if state.current_slide_index <= 0:
        return None
    return go_to_slide(state, state.current_slide_index - 1)


def blank_slide(arity: int) -> Slide:
    return Slide(images=[""] * arity)


def add_slide(state: PresentationState, arity: int) -> PresentationState:
    return _state([*state.slides, blank_slide(arity)], state.current_slide_index)


def delete_slide(state: PresentationState, index: int) -> Optional[PresentationState]:
    slides = state.slides
    if not 0 <= index < len(slides):
        return None

    new_slides = [s for i, s in enumerate(slides) if i != index]
    current = state.current_slide_index
    if current >= len(new_slides):
        current = max(0, len(new_slides) - 1)
    elif index < current:
        current -= 1
    return _state(new_slides, current)


def update_slide_images(
    state: PresentationState, index: int, images: Sequence[str]
) -> Optional[PresentationState]:
    if not 0 <= index < len(state.slides):
        return None
    new_slides = list(state.slides)
    new_slides[index] = Slide(images=list(images))
    return _state(new_slides, state.current_slide_index)


def reorder_slides(
    state: PresentationState, old_index: int, new_index: int
) -> Optional[PresentationState]:
    count = len(state.slides)
    if old_index == new_index or not 0 <= old_index < count or not 0 <= new_index < count:
        return None

    new_slides = list(state.slides)
    moved = new_slides.pop(old_index)
    new_slides.insert(new_index, moved)

    current = state.current_slide_index
    if current == old_index:
        current = new_index
    elif old_index < current <= new_index:
        current -= 1
    elif new_index <= current < old_index:
        current += 1
    return _state(new_slides, current)
