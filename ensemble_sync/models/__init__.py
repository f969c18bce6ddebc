from ensemble_sync.models.base import Base
from ensemble_sync.models.presentation import Presentation

__all__ = ["Base", "Presentation"]
