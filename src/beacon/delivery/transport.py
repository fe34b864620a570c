"""Upload request encoding and HTTP transports.

Transports are callback style: ``send(request, on_response)`` performs one
POST and hands exactly one ``UploadResponse`` to ``on_response``. Network
failures never raise; they arrive as status 0 with the error text as body.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import httpx

from beacon.constants import API_VERSION, STATUS_SUCCESS
from beacon.events import QueuedEntry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# InvalidURL is raised while building the request and is not an HTTPError.
UPLOAD_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass(frozen=True)
class UploadResponse:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


@dataclass(frozen=True)
class UploadRequest:
    """Form-encoded POST to the collector."""

    url: str
    data: dict[str, str]

    @property
    def events(self) -> list[dict[str, Any]]:
        """Decoded ``e`` field."""
        return json.loads(self.data["e"])


ResponseHandler = Callable[[UploadResponse], None]


def upload_checksum(api_key: str, events_json: str, upload_time: str) -> str:
    return hashlib.md5((API_VERSION + api_key + events_json + upload_time).encode("utf-8")).hexdigest()


def build_upload_request(
    url: str, api_key: str, entries: list[QueuedEntry], upload_time: int
) -> UploadRequest:
    """
    Serialize a batch into an upload request.

    Args:
        url: Collector URL
        api_key: Project API key (``client`` field)
        entries: Batch in delivery order
        upload_time: Epoch milliseconds of the upload

    Returns:
        UploadRequest with fields client, e, v, upload_time and checksum
    """
    events_json = json.dumps([entry.payload for entry in entries], separators=(",", ":"))
    upload_time_str = str(upload_time)
    return UploadRequest(
        url=url,
        data={
            "client": api_key,
            "e": events_json,
            "v": API_VERSION,
            "upload_time": upload_time_str,
            "checksum": upload_checksum(api_key, events_json, upload_time_str),
        },
    )


class Transport(Protocol):
    def send(self, request: UploadRequest, on_response: ResponseHandler) -> None:
        ...


class HttpxTransport:
    """
    Blocking transport over ``httpx.Client``.

    ``on_response`` runs before ``send`` returns.
    """

    def __init__(self, client: httpx.Client | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def send(self, request: UploadRequest, on_response: ResponseHandler) -> None:
        try:
            resp = self.client.post(request.url, data=request.data)
            response = UploadResponse(resp.status_code, resp.text)
        except UPLOAD_ERRORS as e:
            logger.warning("Upload to %s failed: %s", request.url, e)
            response = UploadResponse(0, str(e))
        on_response(response)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncHttpxTransport:
    """
    Non-blocking transport over ``httpx.AsyncClient``.

    Each ``send`` schedules a task on the running event loop; ``on_response``
    runs from the task's done callback, on the loop thread.
    """

    def __init__(
        self, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._tasks: set[asyncio.Task[UploadResponse]] = set()

    async def _post(self, request: UploadRequest) -> UploadResponse:
        try:
            resp = await self.client.post(request.url, data=request.data)
        except UPLOAD_ERRORS as e:
            logger.warning("Upload to %s failed: %s", request.url, e)
            return UploadResponse(0, str(e))
        return UploadResponse(resp.status_code, resp.text)

    def send(self, request: UploadRequest, on_response: ResponseHandler) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, upload not sent")
            on_response(UploadResponse(0, "No running event loop"))
            return

        task = loop.create_task(self._post(request))
        self._tasks.add(task)

        def _done(done: asyncio.Task[UploadResponse]) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                on_response(UploadResponse(0, "Upload cancelled"))
            elif done.exception() is not None:
                error = done.exception()
                logger.warning("Upload to %s failed: %s", request.url, error)
                on_response(UploadResponse(0, str(error)))
            else:
                on_response(done.result())

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait until every scheduled upload, including follow-up batches, has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Let done callbacks (which may schedule the next batch) run.
            await asyncio.sleep(0)

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_client:
            await self.client.aclose()
