"""End-to-end pipeline on a real event loop with mocked HTTP."""

import asyncio

import httpx
import pytest
import respx

from beacon.client import TelemetryClient
from beacon.delivery import AsyncHttpxTransport, AsyncioTimer
from beacon.storage import MemoryStore


@pytest.mark.asyncio
@pytest.mark.respx(base_url="https://collector.example.com")
async def test_batches_drain_through_async_transport(respx_mock: respx.MockRouter):
    route = respx_mock.post("/").mock(return_value=httpx.Response(200, text="success"))
    transport = AsyncHttpxTransport()
    client = TelemetryClient(store=MemoryStore(), transport=transport)
    client.init(
        "apikey-123456",
        options={"api_endpoint": "collector.example.com", "upload_batch_size": 2},
    )

    statuses = []
    for i in range(5):
        client.log_event("Event", {"index": i}, lambda s, b: statuses.append(s))

    await transport.drain()

    assert client.unsent_count() == 0
    assert statuses == [200] * 5
    assert route.call_count >= 3
    await transport.aclose()


@pytest.mark.asyncio
async def test_asyncio_timer_fires_delayed_flush():
    fired = asyncio.Event()
    timer = AsyncioTimer()

    assert timer.call_later(10, fired.set) is True
    await asyncio.wait_for(fired.wait(), timeout=1)


def test_asyncio_timer_without_loop(caplog):
    timer = AsyncioTimer()

    assert timer.call_later(10, lambda: None) is False
    assert "No running event loop" in caplog.text
