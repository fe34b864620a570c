"""Tests for upload encoding and the httpx transports."""

import asyncio
import hashlib
import json
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from beacon.delivery import (
    AsyncHttpxTransport,
    HttpxTransport,
    UploadResponse,
    build_upload_request,
)
from beacon.events import EntryKind, QueuedEntry


def _entries(count):
    return [
        QueuedEntry(
            EntryKind.EVENT,
            {"event_type": f"E{i}", "event_id": i, "sequence_number": i},
            i,
            i,
        )
        for i in range(1, count + 1)
    ]


def test_build_upload_request_fields():
    request = build_upload_request("https://api.example.com", "apikey", _entries(2), 1234)

    assert request.url == "https://api.example.com"
    assert request.data["client"] == "apikey"
    assert request.data["v"] == "2"
    assert request.data["upload_time"] == "1234"
    assert [e["event_type"] for e in request.events] == ["E1", "E2"]

    expected = hashlib.md5(("2" + "apikey" + request.data["e"] + "1234").encode()).hexdigest()
    assert request.data["checksum"] == expected


@pytest.mark.respx(base_url="https://api.example.com")
def test_httpx_transport_posts_form(respx_mock: respx.MockRouter):
    route = respx_mock.post("/").mock(return_value=httpx.Response(200, text="success"))
    request = build_upload_request("https://api.example.com/", "apikey", _entries(1), 1)
    responses = []

    with HttpxTransport() as transport:
        transport.send(request, responses.append)

    assert responses == [UploadResponse(200, "success")]
    form = parse_qs(route.calls.last.request.content.decode())
    assert form["client"] == ["apikey"]
    assert json.loads(form["e"][0])[0]["event_type"] == "E1"


@pytest.mark.respx(base_url="https://api.example.com")
def test_httpx_transport_passes_status_through(respx_mock: respx.MockRouter):
    respx_mock.post("/").mock(return_value=httpx.Response(413, text=""))
    request = build_upload_request("https://api.example.com/", "apikey", _entries(1), 1)
    responses = []

    with HttpxTransport() as transport:
        transport.send(request, responses.append)

    assert responses == [UploadResponse(413, "")]


@pytest.mark.respx(base_url="https://api.example.com")
def test_httpx_transport_network_error(respx_mock: respx.MockRouter):
    """Network errors surface as status 0 instead of raising."""
    respx_mock.post("/").mock(side_effect=httpx.ConnectError("Connection refused"))
    request = build_upload_request("https://api.example.com/", "apikey", _entries(1), 1)
    responses = []

    with HttpxTransport() as transport:
        transport.send(request, responses.append)

    assert responses[0].status == 0
    assert "Connection refused" in responses[0].body


@pytest.mark.asyncio
@pytest.mark.respx(base_url="https://api.example.com")
async def test_async_transport_resumes_via_callback(respx_mock: respx.MockRouter):
    respx_mock.post("/").mock(return_value=httpx.Response(200, text="success"))
    request = build_upload_request("https://api.example.com/", "apikey", _entries(3), 1)
    responses = []

    transport = AsyncHttpxTransport()
    transport.send(request, responses.append)
    assert responses == []

    await transport.aclose()
    assert responses == [UploadResponse(200, "success")]


@pytest.mark.asyncio
@pytest.mark.respx(base_url="https://api.example.com")
async def test_async_transport_network_error(respx_mock: respx.MockRouter):
    respx_mock.post("/").mock(side_effect=httpx.ReadTimeout("timed out"))
    request = build_upload_request("https://api.example.com/", "apikey", _entries(1), 1)
    responses = []

    transport = AsyncHttpxTransport()
    transport.send(request, responses.append)
    await transport.drain()

    assert responses[0].status == 0
    await transport.aclose()


def test_async_transport_without_loop_reports_failure():
    request = build_upload_request("https://api.example.com/", "apikey", _entries(1), 1)
    responses = []

    transport = AsyncHttpxTransport()
    transport.send(request, responses.append)

    assert responses == [UploadResponse(0, "No running event loop")]
    asyncio.run(transport.aclose())


def test_httpx_transport_invalid_url():
    """A URL httpx cannot parse surfaces as status 0 instead of raising."""
    request = build_upload_request("https://api.example.com:abc/", "apikey", _entries(1), 1)
    responses = []

    with HttpxTransport() as transport:
        transport.send(request, responses.append)

    assert len(responses) == 1
    assert responses[0].status == 0


@pytest.mark.asyncio
async def test_async_transport_unexpected_error():
    """An exception escaping the upload task still answers the callback."""

    class BrokenTransport(AsyncHttpxTransport):
        async def _post(self, request):
            raise RuntimeError("encoder failed")

    request = build_upload_request("https://api.example.com/", "apikey", _entries(1), 1)
    responses = []

    transport = BrokenTransport()
    transport.send(request, responses.append)
    await transport.drain()

    assert responses == [UploadResponse(0, "encoder failed")]
    await transport.aclose()


def test_only_200_is_ok():
    assert UploadResponse(200, "success").ok
    assert not UploadResponse(204, "").ok
    assert not UploadResponse(0, "Connection refused").ok
