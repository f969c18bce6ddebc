import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from ensemble_sync import __version__
from ensemble_sync.api import images, presentations, state
from ensemble_sync.api.deps import error_envelope
from ensemble_sync.config import Settings, settings
from ensemble_sync.errors import SyncError
from ensemble_sync.services.state_store import StateRepository, create_state_repository
from ensemble_sync.services.storage_service import IMAGE_PREFIX, StorageService

logger = logging.getLogger(__name__)

MIME_MAP = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
}


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def create_app(
    config: Settings = settings,
    repository: Optional[StateRepository] = None,
    storage: Optional[StorageService] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Auto-create tables on startup (SQLite, no migration step needed)
        if config.store_backend == "database":
            from ensemble_sync.models.base import init_db
            await init_db()
            logger.info("Database tables created / verified")

        os.makedirs(config.storage_dir, exist_ok=True)
        logger.info(
            f"Ensemble Sync ready: arity={config.slide_arity}, "
            f"live key '{config.live_state_key}'"
        )
        yield

    app = FastAPI(
        title="Ensemble Sync API",
        description="Synchronized multi-screen presentation controller",
        version=__version__,
        lifespan=lifespan,
    )

    # One store and one blob service per process, shared by every request
    app.state.config = config
    app.state.repository = repository or create_state_repository(config)
    app.state.storage = storage or StorageService(config.storage_dir, config.public_base_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError):
        return error_envelope(exc.message, exc.status_code or 500)

    # Mount REST routes
    app.include_router(state.router, prefix="/api/presentation", tags=["state"])
    app.include_router(presentations.router, prefix="/api/presentations", tags=["presentations"])
    app.include_router(images.router, prefix="/api/images", tags=["images"])

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/api/files/{file_path:path}")
    async def serve_file(file_path: str):
        """Serve uploaded images from the storage directory."""
        full_path = os.path.join(config.storage_dir, file_path)
        # Only the image bucket is public; prevent directory traversal
        full_path = os.path.realpath(full_path)
        bucket_real = os.path.realpath(os.path.join(config.storage_dir, IMAGE_PREFIX))
        if not full_path.startswith(bucket_real + os.sep):
            raise HTTPException(status_code=403, detail="Access denied")
        if not os.path.isfile(full_path):
            raise HTTPException(status_code=404, detail="File not found")

        ext = os.path.splitext(full_path)[1].lower()
        media_type = MIME_MAP.get(ext, "application/octet-stream")
        return FileResponse(full_path, media_type=media_type)

    return app


app = create_app()
