from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Slide(WireModel):
    images: list[str]


class PresentationState(WireModel):
    slides: list[Slide] = []
    current_slide_index: int = 0

    @property
    def current_slide(self) -> Optional[Slide]:
        if 0 <= self.current_slide_index < len(self.slides):
            return self.slides[self.current_slide_index]
        return None

    def image_for(self, screen_index: int) -> Optional[str]:
        """Image URL shown on ``screen_index`` for the current slide, if any."""
        slide = self.current_slide
        if slide is None or not 0 <= screen_index < len(slide.images):
            return None
        return slide.images[screen_index] or None


class PresentationSnapshot(PresentationState):
    id: str
    updated_at: Optional[datetime] = None

    def to_state(self) -> PresentationState:
        return PresentationState(
            slides=self.slides,
            current_slide_index=self.current_slide_index,
        )


class SnapshotSummary(WireModel):
    id: str
    updated_at: Optional[datetime] = None


class ApiResponse(WireModel, Generic[T]):
    """Envelope shared by every endpoint: ``{success, data?, error?}``."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
