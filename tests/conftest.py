import asyncio
import io
from typing import Optional

import httpx
import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ensemble_sync.client.sync_client import StateSyncClient
from ensemble_sync.config import Settings
from ensemble_sync.errors import StateNotFoundError
from ensemble_sync.main import create_app
from ensemble_sync.models.base import init_db
from ensemble_sync.schemas.presentation import (
    PresentationSnapshot,
    PresentationState,
    Slide,
    SnapshotSummary,
)
from ensemble_sync.services.state_store import DatabaseStateRepository, JsonFileStateRepository
from ensemble_sync.services.storage_service import StorageService

BASE_URL = "http://ensemble.test"


def make_state(*image_sets, index: int = 0) -> PresentationState:
    return PresentationState(
        slides=[Slide(images=list(images)) for images in image_sets],
        current_slide_index=index,
    )


def png_bytes(color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color=color).save(buf, format="PNG")
    return buf.getvalue()


class FakeGateway:
    """In-memory stand-in for the sync client.

    Records every write and how many were in flight at once. Each call
    yields to the event loop once; setting ``gate`` (writes) or
    ``read_gate`` (reads) holds the call until the event is set.
    """

    def __init__(self, state: Optional[PresentationState] = None):
        self.stored = state
        self.snapshots: dict[str, PresentationState] = {}
        self.writes: list[PresentationState] = []
        self.reads = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: Optional[asyncio.Event] = None
        self.read_gate: Optional[asyncio.Event] = None
        self.fail_with: Optional[Exception] = None

    async def read_state(self) -> PresentationState:
        self.reads += 1
        await asyncio.sleep(0)
        if self.read_gate is not None:
            await self.read_gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        if self.stored is None:
            raise StateNotFoundError()
        return self.stored

    async def write_state(self, state: PresentationState) -> PresentationState:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_with is not None:
                raise self.fail_with
            self.writes.append(state)
            self.stored = state
            return state
        finally:
            self.in_flight -= 1

    async def list_snapshots(self):
        return [SnapshotSummary(id=key) for key in self.snapshots]

    async def get_snapshot(self, snapshot_id: str):
        if snapshot_id not in self.snapshots:
            raise StateNotFoundError("Presentation not found")
        state = self.snapshots[snapshot_id]
        return PresentationSnapshot(id=snapshot_id, **state.model_dump())

    async def save_snapshot(self, snapshot_id: str, state: PresentationState):
        self.snapshots[snapshot_id] = state

    async def delete_snapshot(self, snapshot_id: str) -> None:
        if self.snapshots.pop(snapshot_id, None) is None:
            raise StateNotFoundError("Presentation not found")


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(
        store_backend="json",
        storage_dir=str(tmp_path / "data"),
        slide_arity=3,
        live_state_key="default",
    )


@pytest.fixture
def json_repository(config) -> JsonFileStateRepository:
    return JsonFileStateRepository(config.storage_dir)


@pytest.fixture
async def db_repository():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield DatabaseStateRepository(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


@pytest.fixture
def app(config, json_repository):
    return create_app(
        config=config,
        repository=json_repository,
        storage=StorageService(config.storage_dir),
    )


@pytest.fixture
async def http(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL) as client:
        yield client


@pytest.fixture
async def sync_client(app):
    async with StateSyncClient(BASE_URL, transport=httpx.ASGITransport(app=app)) as client:
        yield client
