"""Control panel state machine.

Every mutation follows compute-then-confirm-then-apply: the new full state
is computed locally, sent as a whole-state write, and only applied once the
server confirms it. At most one write is in flight per controller; actions
issued meanwhile are dropped, as are actions whose precondition fails.
"""
import enum
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from pydantic import ValidationError

from ensemble_sync.config import settings
from ensemble_sync.errors import StateNotFoundError, SyncError
from ensemble_sync.schemas.presentation import (
    PresentationSnapshot,
    PresentationState,
    Slide,
    SnapshotSummary,
)
from ensemble_sync.services import slide_ops

logger = logging.getLogger(__name__)


class StateGateway(Protocol):
    async def read_state(self) -> PresentationState: ...

    async def write_state(self, state: PresentationState) -> PresentationState: ...

    async def list_snapshots(self) -> list[SnapshotSummary]: ...

    async def get_snapshot(self, snapshot_id: str) -> PresentationSnapshot: ...

    async def save_snapshot(self, snapshot_id: str, state: PresentationState) -> Any: ...

    async def delete_snapshot(self, snapshot_id: str) -> None: ...


class ControlStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    UPDATING = "updating"
    ERROR = "error"


def _error_message(exc: Exception, fallback: str) -> str:
    if isinstance(exc, SyncError):
        return exc.message
    return str(exc) or fallback


class PresentationController:
    """In-memory control client driving every action through the sync protocol."""

    def __init__(
        self,
        sync: StateGateway,
        arity: int = settings.slide_arity,
        on_change: Optional[Callable[["PresentationController"], None]] = None,
    ):
        self._sync = sync
        self.arity = arity
        self._on_change = on_change
        self._state = PresentationState()
        self._status = ControlStatus.IDLE
        self._loading = False
        self._updating = False
        self.error: Optional[str] = None

    # -- read-only view -----------------------------------------------------

    @property
    def status(self) -> ControlStatus:
        return self._status

    @property
    def state(self) -> PresentationState:
        return self._state

    @property
    def slides(self) -> list[Slide]:
        return self._state.slides

    @property
    def current_slide_index(self) -> int:
        return self._state.current_slide_index

    @property
    def current_slide(self) -> Optional[Slide]:
        return self._state.current_slide

    @property
    def next_slide_preview(self) -> Optional[Slide]:
        index = self._state.current_slide_index + 1
        if 0 <= index < len(self._state.slides):
            return self._state.slides[index]
        return None

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def is_updating(self) -> bool:
        return self._updating

    @property
    def _busy(self) -> bool:
        return self._loading or self._updating

    def _transition(self, status: ControlStatus) -> None:
        self._status = status
        if self._on_change is not None:
            self._on_change(self)

    def set_error(self, message: Optional[str]) -> None:
        self.error = message
        if self._busy:
            return
        self._transition(ControlStatus.ERROR if message else ControlStatus.IDLE)

    def clear_error(self) -> None:
        self.set_error(None)

    # -- initialization -----------------------------------------------------

    async def initialize(self) -> bool:
        """Fetch the live state. Absence is a cold start, not a failure."""
        if self._busy:
            return False

        self._loading = True
        self.error = None
        self._transition(ControlStatus.LOADING)
        try:
            state = await self._sync.read_state()
        except StateNotFoundError:
            logger.info("No live presentation state yet, starting with an empty deck")
            state = PresentationState()
        except Exception as e:
            self._loading = False
            self.error = _error_message(e, "Failed to initialize presentation")
            logger.warning(f"Initialization failed: {self.error}")
            self._transition(ControlStatus.ERROR)
            return False

        self._state = state
        self._loading = False
        self._transition(ControlStatus.IDLE)
        return True

    retry = initialize

    # -- mutations ----------------------------------------------------------

    def _begin_update(self) -> None:
        self._updating = True
        self.error = None
        self._transition(ControlStatus.UPDATING)

    async def _confirm(
        self,
        send: Callable[[], Awaitable[PresentationState]],
        fallback_error: str,
    ) -> bool:
        try:
            new_state = await send()
        except Exception as e:
            self._updating = False
            self.error = _error_message(e, fallback_error)
            logger.warning(f"{fallback_error}: {self.error}")
            self._transition(ControlStatus.ERROR)
            return False

        self._state = new_state
        self._updating = False
        self._transition(ControlStatus.IDLE)
        return True

    async def _commit(
        self,
        compute: Callable[[PresentationState], Optional[PresentationState]],
        fallback_error: str,
    ) -> bool:
        # Guard and flag flip happen before the first await
        if self._busy:
            return False
        try:
            new_state = compute(self._state)
        except ValidationError as e:
            # Rejected locally: nothing is sent
            logger.warning(f"{fallback_error}: {e.error_count()} invalid field(s)")
            self.set_error(fallback_error)
            return False
        if new_state is None:
            return False

        self._begin_update()

        async def send() -> PresentationState:
            await self._sync.write_state(new_state)
            return new_state

        return await self._confirm(send, fallback_error)

    async def next_slide(self) -> bool:
        return await self._commit(slide_ops.next_slide, "Failed to advance slide")

    async def prev_slide(self) -> bool:
        return await self._commit(slide_ops.prev_slide, "Failed to go back slide")

    async def go_to_slide(self, index: int) -> bool:
        return await self._commit(lambda s: slide_ops.go_to_slide(s, index), "Failed to go to slide")

    async def add_slide(self) -> bool:
        return await self._commit(lambda s: slide_ops.add_slide(s, self.arity), "Failed to add slide")

    async def delete_slide(self, index: int) -> bool:
        return await self._commit(lambda s: slide_ops.delete_slide(s, index), "Failed to delete slide")

    async def update_slide_images(self, index: int, images: Sequence[str]) -> bool:
        return await self._commit(
            lambda s: slide_ops.update_slide_images(s, index, images),
            "Failed to update slide images",
        )

    async def reorder_slides(self, old_index: int, new_index: int) -> bool:
        return await self._commit(
            lambda s: slide_ops.reorder_slides(s, old_index, new_index),
            "Failed to reorder slides",
        )

    # -- snapshots ----------------------------------------------------------

    async def list_snapshots(self) -> list[SnapshotSummary]:
        try:
            return await self._sync.list_snapshots()
        except Exception as e:
            self.set_error(_error_message(e, "Failed to fetch presentations"))
            return []

    async def save_snapshot(self, snapshot_id: str) -> bool:
        """Save the confirmed local state under ``snapshot_id``."""
        if not snapshot_id:
            return False
        try:
            await self._sync.save_snapshot(snapshot_id, self._state)
        except Exception as e:
            self.set_error(_error_message(e, "Failed to save presentation"))
            return False
        logger.info(f"Saved presentation as '{snapshot_id}'")
        return True

    async def load_snapshot(self, snapshot_id: str) -> bool:
        """Make a saved snapshot the live state."""
        if self._busy or not snapshot_id:
            return False

        self._begin_update()

        async def send() -> PresentationState:
            snapshot = await self._sync.get_snapshot(snapshot_id)
            new_state = snapshot.to_state()
            await self._sync.write_state(new_state)
            return new_state

        ok = await self._confirm(send, "Failed to load presentation")
        if ok:
            logger.info(f"Loaded presentation '{snapshot_id}' into the live state")
        return ok

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        if not snapshot_id:
            return False
        try:
            await self._sync.delete_snapshot(snapshot_id)
        except Exception as e:
            self.set_error(_error_message(e, "Failed to delete presentation"))
            return False
        return True
