"""Display poller: one screen of the multi-screen presentation.

Each display polls the live state at a fixed interval, picks the image for
its screen from the current slide, probes that the image decodes, and
exposes what should be on screen as an immutable ``DisplayView``. Polling
failures keep the last good state so the screen never blanks.
"""
import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ensemble_sync.config import settings
from ensemble_sync.errors import SyncError, TransportError
from ensemble_sync.schemas.presentation import PresentationState

logger = logging.getLogger(__name__)

INVALID_SCREEN_TEXT = "Invalid Screen ID"
WAITING_TEXT = "WAITING..."
IMAGE_ERROR_TEXT = "Image failed to load."
CONNECTION_LOST_TEXT = "Connection to server lost. Retrying..."


def waiting_for_presenter(status_code: int) -> str:
    return f"Waiting for presenter... (Status: {status_code})"


class StateReader(Protocol):
    async def read_state(self) -> PresentationState: ...


class Prober(Protocol):
    async def probe(self, url: str) -> bool: ...


class ImageStatus(str, enum.Enum):
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class ViewKind(str, enum.Enum):
    INVALID_SCREEN = "invalid_screen"
    WAITING = "waiting"
    IMAGE = "image"
    IMAGE_ERROR = "image_error"


@dataclass(frozen=True)
class DisplayView:
    kind: ViewKind
    message: Optional[str] = None
    image_url: Optional[str] = None
    # 0 while the image is still loading, 1 once it decoded
    opacity: float = 1.0
    crossfade_seconds: float = 0.0
    warning: bool = False


def parse_screen_id(screen_id: str, arity: int) -> Optional[int]:
    """Map an external 1-based screen id to a 0-based index, or None if invalid."""
    try:
        index = int(str(screen_id).strip()) - 1
    except ValueError:
        return None
    if not 0 <= index < arity:
        return None
    return index


class DisplayPoller:
    def __init__(
        self,
        screen_id: str,
        reader: StateReader,
        prober: Prober,
        arity: int = settings.slide_arity,
        poll_interval: float = settings.poll_interval_ms / 1000,
        crossfade_seconds: float = settings.crossfade_seconds,
        on_render: Optional[Callable[[DisplayView], None]] = None,
    ):
        self.screen_id = screen_id
        self.screen_index = parse_screen_id(screen_id, arity)
        self._reader = reader
        self._prober = prober
        self.poll_interval = poll_interval
        self.crossfade_seconds = crossfade_seconds
        self._on_render = on_render

        self.state: Optional[PresentationState] = None
        self.connection_error: Optional[str] = None
        self.image_url: Optional[str] = None
        self.image_status = ImageStatus.LOADING

        self._poll_task: Optional[asyncio.Task] = None
        self._probe_task: Optional[asyncio.Task] = None
        self._stopped = False
        self._last_view: Optional[DisplayView] = None

    @property
    def is_valid(self) -> bool:
        return self.screen_index is not None

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # -- lifecycle ----------------------------------------------------------

    async def __aenter__(self) -> "DisplayPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def start(self) -> None:
        """Start polling. An invalid screen renders its terminal view and never polls."""
        self._emit()
        if not self.is_valid:
            logger.warning(f"Display '{self.screen_id}': invalid screen id, not polling")
            return
        if self._stopped or self.is_running:
            return
        self._poll_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stopped = True
        for task in (self._poll_task, self._probe_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._probe_task = None

    async def _run(self) -> None:
        logger.info(
            f"Display {self.screen_index + 1}: polling every {self.poll_interval:.3f}s"
        )
        while not self._stopped:
            try:
                await self.poll_once()
            except Exception:
                logger.exception(f"Display {self.screen_id}: poll tick failed")
            await asyncio.sleep(self.poll_interval)

    # -- polling ------------------------------------------------------------

    async def poll_once(self) -> None:
        """One tick: read the live state and reconcile the local view."""
        if self._stopped:
            return
        try:
            state = await self._reader.read_state()
        except TransportError as e:
            error = CONNECTION_LOST_TEXT
            logger.debug(f"Display {self.screen_id}: polling failed: {e.message}")
        except SyncError as e:
            error = waiting_for_presenter(e.status_code) if e.status_code else CONNECTION_LOST_TEXT
        except Exception as e:
            error = CONNECTION_LOST_TEXT
            logger.error(f"Display {self.screen_id}: polling failed: {e}")
        else:
            error = None

        # Completed after teardown: discard
        if self._stopped:
            return

        if error is None:
            self.state = state
            if self.connection_error is not None:
                logger.info(f"Display {self.screen_id}: connection restored")
            self.connection_error = None
            self._sync_image()
        elif error != self.connection_error:
            logger.warning(f"Display {self.screen_id}: {error}")
            self.connection_error = error
        self._emit()

    def _current_image(self) -> Optional[str]:
        if self.state is None or self.screen_index is None:
            return None
        return self.state.image_for(self.screen_index)

    def _sync_image(self) -> None:
        url = self._current_image()
        if url == self.image_url:
            return

        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
        self.image_url = url
        self.image_status = ImageStatus.LOADING
        self._probe_task = asyncio.create_task(self._probe(url)) if url else None

    async def _probe(self, url: str) -> None:
        ok = await self._prober.probe(url)
        # Stale: torn down, or the slide moved on while probing
        if self._stopped or url != self.image_url:
            return
        self.image_status = ImageStatus.LOADED if ok else ImageStatus.ERROR
        if not ok:
            logger.warning(f"Display {self.screen_id}: image failed to load: {url}")
        self._emit()

    # -- rendering ----------------------------------------------------------

    def render(self) -> DisplayView:
        if not self.is_valid:
            return DisplayView(kind=ViewKind.INVALID_SCREEN, message=INVALID_SCREEN_TEXT)

        if self.image_url is None:
            if self.connection_error:
                return DisplayView(
                    kind=ViewKind.WAITING, message=self.connection_error, warning=True
                )
            return DisplayView(kind=ViewKind.WAITING, message=WAITING_TEXT)

        if self.image_status is ImageStatus.ERROR:
            return DisplayView(
                kind=ViewKind.IMAGE_ERROR,
                message=IMAGE_ERROR_TEXT,
                image_url=self.image_url,
            )

        return DisplayView(
            kind=ViewKind.IMAGE,
            image_url=self.image_url,
            opacity=1.0 if self.image_status is ImageStatus.LOADED else 0.0,
            crossfade_seconds=self.crossfade_seconds,
        )

    def _emit(self) -> None:
        view = self.render()
        if view == self._last_view:
            return
        self._last_view = view
        if self._on_render is not None:
            self._on_render(view)
