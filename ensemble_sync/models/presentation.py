from sqlalchemy import Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from ensemble_sync.models.base import Base, TimestampMixin


class Presentation(Base, TimestampMixin):
    """One keyed presentation row: the live state or a named snapshot."""

    __tablename__ = "presentations"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    slides: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    current_slide_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
