"""HTTP client for the presentation state sync protocol.

Every response is unwrapped from the ``{success, data, error}`` envelope
and failures are mapped onto the error taxonomy. Both the status code and
``success`` are checked: a 2xx with ``success: false`` is still a failure.
"""
import logging
from typing import Any, Optional

import httpx

from ensemble_sync.errors import (
    StateNotFoundError,
    StateValidationError,
    TransportError,
    UnexpectedServerError,
)
from ensemble_sync.schemas.image import ImageFile
from ensemble_sync.schemas.presentation import (
    PresentationSnapshot,
    PresentationState,
    SnapshotSummary,
)

logger = logging.getLogger(__name__)

STATE_PATH = "/api/presentation/state"
PRESENTATIONS_PATH = "/api/presentations"
IMAGES_PATH = "/api/images"


class StateSyncClient:
    """Async client for the live state, snapshot and image resources."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "StateSyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            body = response.json()
        except ValueError as e:
            # A non-2xx page (proxy, plain-text 500) still means the server answered
            if not 200 <= response.status_code < 300:
                raise UnexpectedServerError(
                    f"Server error (Status: {response.status_code})",
                    response.status_code,
                ) from e
            raise TransportError(
                f"Unreadable response from server (Status: {response.status_code})"
            ) from e
        return unwrap(response.status_code, body)

    # -- live state ---------------------------------------------------------

    async def read_state(self) -> PresentationState:
        data = await self._call("GET", STATE_PATH)
        return PresentationState.model_validate(data)

    async def write_state(self, state: PresentationState) -> PresentationState:
        data = await self._call("POST", STATE_PATH, json=state.to_wire())
        return PresentationState.model_validate(data)

    # -- snapshots ----------------------------------------------------------

    async def list_snapshots(self) -> list[SnapshotSummary]:
        data = await self._call("GET", PRESENTATIONS_PATH)
        return [SnapshotSummary.model_validate(item) for item in data or []]

    async def get_snapshot(self, snapshot_id: str) -> PresentationSnapshot:
        data = await self._call("GET", PRESENTATIONS_PATH, params={"id": snapshot_id})
        return PresentationSnapshot.model_validate(data)

    async def save_snapshot(self, snapshot_id: str, state: PresentationState) -> SnapshotSummary:
        payload = {"id": snapshot_id, **state.to_wire()}
        data = await self._call("POST", PRESENTATIONS_PATH, json=payload)
        return SnapshotSummary.model_validate(data)

    async def delete_snapshot(self, snapshot_id: str) -> None:
        await self._call("DELETE", PRESENTATIONS_PATH, params={"id": snapshot_id})

    # -- images -------------------------------------------------------------

    async def list_images(self) -> list[ImageFile]:
        data = await self._call("GET", IMAGES_PATH)
        return [ImageFile.model_validate(item) for item in data or []]

    async def upload_image(
        self, filename: str, data: bytes, content_type: str = "image/jpeg"
    ) -> str:
        files = {"file": (filename, data, content_type)}
        result = await self._call("POST", f"{IMAGES_PATH}/upload", files=files)
        return result["url"]

    async def delete_image(self, name: str) -> None:
        await self._call("DELETE", IMAGES_PATH, params={"name": name})

    async def fetch_bytes(self, url: str) -> bytes:
        """Raw GET for image probes. Relative URLs resolve against the API base."""
        response = await self._request("GET", url)
        if response.status_code >= 400:
            raise UnexpectedServerError(
                f"Image request failed (Status: {response.status_code})",
                response.status_code,
            )
        return response.content


def unwrap(status_code: int, body: Any) -> Any:
    """Return ``data`` from a successful envelope or raise the matching error."""
    if not isinstance(body, dict):
        raise UnexpectedServerError(f"Malformed response (Status: {status_code})", status_code)

    error = body.get("error")
    if 200 <= status_code < 300 and body.get("success") is True:
        return body.get("data")
    if status_code == 400:
        raise StateValidationError(error, status_code)
    if status_code == 404:
        raise StateNotFoundError(error, status_code)
    raise UnexpectedServerError(error or f"Server error (Status: {status_code})", status_code)
