from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from ensemble_sync.schemas.presentation import ApiResponse
from ensemble_sync.services.state_store import StateRepository
from ensemble_sync.services.storage_service import StorageService


def get_repository(request: Request) -> StateRepository:
    return request.app.state.repository


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


def get_config(request: Request):
    return request.app.state.config


def envelope(data: Any = None, status_code: int = 200) -> JSONResponse:
    """Successful ``{success: true, data}`` response."""
    body = ApiResponse[Any](success=True, data=data)
    return JSONResponse(body.model_dump(mode="json", by_alias=True, exclude_none=True), status_code=status_code)


def error_envelope(error: str, status_code: int, data: Optional[Any] = None) -> JSONResponse:
    body = ApiResponse[Any](success=False, error=error, data=data)
    return JSONResponse(body.model_dump(mode="json", by_alias=True, exclude_none=True), status_code=status_code)


async def read_json(request: Request) -> Any:
    """Request body as JSON, or None when it is not valid JSON."""
    try:
        return await request.json()
    except ValueError:
        return None
