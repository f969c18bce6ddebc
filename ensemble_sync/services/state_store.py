"""Keyed presentation store behind the sync protocol.

The live state and every named snapshot are rows of the same store, each
addressed by a string key. Writes are whole-row upserts; there is no
version token, so the last writer wins.
"""
from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote, unquote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ensemble_sync.errors import StateNotFoundError
from ensemble_sync.models.base import utcnow
from ensemble_sync.models.presentation import Presentation
from ensemble_sync.schemas.presentation import (
    PresentationSnapshot,
    PresentationState,
    SnapshotSummary,
)

logger = logging.getLogger(__name__)


class StateRepository(abc.ABC):
    """Repository interface injected into the API and constructed once per process."""

    @abc.abstractmethod
    async def read(self, key: str) -> PresentationSnapshot:
        """Return the row stored under ``key`` or raise ``StateNotFoundError``."""

    @abc.abstractmethod
    async def write(self, key: str, state: PresentationState) -> PresentationSnapshot:
        """Upsert ``state`` under ``key`` and return the stored value."""

    @abc.abstractmethod
    async def list_snapshots(self, exclude: Optional[str] = None) -> list[SnapshotSummary]:
        """List stored keys, newest first."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete ``key``. Returns True if it existed."""


class DatabaseStateRepository(StateRepository):
    """SQLAlchemy-backed store (SQLite via aiosqlite by default)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        # Serializes the read-modify-write upsert within this process
        self._write_lock = asyncio.Lock()

    @staticmethod
    def _to_snapshot(row) -> PresentationSnapshot:
        return PresentationSnapshot(
            id=row.id,
            slides=row.slides,
            current_slide_index=row.current_slide_index,
            updated_at=row.updated_at,
        )

    async def read(self, key: str) -> PresentationSnapshot:
        async with self._session_factory() as db:
            row = await db.get(Presentation, key)
            if row is None:
                raise StateNotFoundError()
            return self._to_snapshot(row)

    async def write(self, key: str, state: PresentationState) -> PresentationSnapshot:
        slides = [slide.model_dump() for slide in state.slides]
        now = utcnow()
        async with self._write_lock, self._session_factory() as db:
            row = await db.get(Presentation, key)
            if row is None:
                row = Presentation(id=key)
                db.add(row)
            row.slides = slides
            row.current_slide_index = state.current_slide_index
            row.updated_at = now
            await db.commit()
            await db.refresh(row)
            logger.debug(f"Stored presentation '{key}': {len(slides)} slides, index={state.current_slide_index}")
            return self._to_snapshot(row)

    async def list_snapshots(self, exclude: Optional[str] = None) -> list[SnapshotSummary]:
        stmt = select(Presentation.id, Presentation.updated_at).order_by(
            Presentation.updated_at.desc()
        )
        if exclude is not None:
            stmt = stmt.where(Presentation.id != exclude)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [SnapshotSummary(id=r.id, updated_at=r.updated_at) for r in result]

    async def delete(self, key: str) -> bool:
        async with self._write_lock, self._session_factory() as db:
            row = await db.get(Presentation, key)
            if row is None:
                return False
            await db.delete(row)
            await db.commit()
            return True


class JsonFileStateRepository(StateRepository):
    """Thin JSON file store.

    Each key lives at: {storage_dir}/presentations/{quoted key}.json
    """

    def __init__(self, storage_dir: str):
        self.base_dir = os.path.join(storage_dir, "presentations")
        os.makedirs(self.base_dir, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.base_dir, quote(key, safe="") + ".json")

    def _load(self, path: str) -> PresentationSnapshot:
        with open(path) as f:
            return PresentationSnapshot.model_validate(json.load(f))

    async def read(self, key: str) -> PresentationSnapshot:
        path = self._path(key)
        if not os.path.exists(path):
            raise StateNotFoundError()
        return self._load(path)

    async def write(self, key: str, state: PresentationState) -> PresentationSnapshot:
        snapshot = PresentationSnapshot(
            id=key,
            slides=state.slides,
            current_slide_index=state.current_slide_index,
            updated_at=utcnow(),
        )
        path = self._path(key)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(snapshot.to_wire(), f, indent=2)
        os.replace(tmp_path, path)
        return snapshot

    async def list_snapshots(self, exclude: Optional[str] = None) -> list[SnapshotSummary]:
        summaries = []
        for filename in os.listdir(self.base_dir):
            if not filename.endswith(".json"):
                continue
            key = unquote(filename[: -len(".json")])
            if key == exclude:
                continue
            snapshot = self._load(os.path.join(self.base_dir, filename))
            summaries.append(SnapshotSummary(id=key, updated_at=snapshot.updated_at))
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        summaries.sort(key=lambda s: s.updated_at or epoch, reverse=True)
        return summaries

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True


def create_state_repository(config) -> StateRepository:
    """Build the repository selected by ``config.store_backend``."""
    if config.store_backend == "json":
        logger.info(f"Using JSON file presentation store under {config.storage_dir}")
        return JsonFileStateRepository(config.storage_dir)

    from ensemble_sync.models.base import async_session_factory

    logger.info("Using database presentation store")
    return DatabaseStateRepository(async_session_factory)
