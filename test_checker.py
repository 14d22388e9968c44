import asyncio

import httpx
import pytest

from checker import check_website
from scoring import calculate_performance_score


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_online_with_content_length_header():
    seen = {}

    def handler(request):
        seen["user_agent"] = request.headers.get("user-agent")
        seen["method"] = request.method
        return httpx.Response(200, headers={"content-length": "1234"}, content=b"x" * 1234)

    async with client_for(handler) as client:
        result = await check_website("https://example.com", client=client)

    assert seen == {"user_agent": "WebPulse-Analytics/1.0", "method": "GET"}
    assert result.status == "online"
    assert result.status_code == 200
    assert result.content_length == 1234
    assert result.error is None
    assert result.ttfb == round(result.load_time * 0.3)
    assert result.performance_score == calculate_performance_score(result.load_time, 200)
    assert result.id and result.timestamp


@pytest.mark.asyncio
async def test_body_is_measured_without_content_length():
    async def body():
        yield "héllo ".encode()
        yield b"world"

    def handler(request):
        return httpx.Response(200, content=body())

    async with client_for(handler) as client:
        result = await check_website("https://example.com/stream", client=client)

    assert result.status == "online"
    assert result.content_length == len("héllo world".encode())


@pytest.mark.asyncio
async def test_error_status_still_counts_as_online():
    def handler(request):
        return httpx.Response(404, content=b"missing")

    async with client_for(handler) as client:
        result = await check_website("https://example.com/nope", client=client)

    assert result.status == "online"
    assert result.status_code == 404
    assert result.performance_score == calculate_performance_score(result.load_time, 404)
    assert result.performance_score <= 80


@pytest.mark.asyncio
async def test_network_failure_is_offline():
    calls = []

    def handler(request):
        calls.append(request.url)
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as client:
        result = await check_website("https://down.example.com", client=client)

    assert result.status == "offline"
    assert result.performance_score == 0
    assert "ConnectError" in result.error
    assert len(calls) == 1
    assert result.status_code is None
    assert result.content_length is None
    assert result.ttfb is None
    assert result.load_time >= 0


@pytest.mark.asyncio
async def test_timeout_cancels_request():
    calls = []

    async def handler(request):
        calls.append(request.url)
        await asyncio.sleep(5)
        return httpx.Response(200)

    async with client_for(handler) as client:
        result = await check_website("https://slow.example.com", client=client, timeout_ms=50)

    assert result.status == "offline"
    assert result.error == "Request timed out after 50 ms"
    assert len(calls) == 1
    assert result.performance_score == 0
    assert 40 <= result.load_time < 5000


@pytest.mark.asyncio
async def test_unresolvable_host_is_offline():
    result = await check_website("https://nonexistent.invalid", timeout_ms=10000)

    assert result.status == "offline"
    assert result.performance_score == 0
    assert result.error
    assert result.status_code is None


@pytest.mark.asyncio
async def test_unexpected_failure_is_offline():
    calls = []

    def handler(request):
        calls.append(request.url)
        raise RuntimeError("stream ended early")

    async with client_for(handler) as client:
        result = await check_website("https://odd.example.com", client=client)

    assert result.status == "offline"
    assert result.error == "RuntimeError: stream ended early"
    assert result.performance_score == 0
    assert len(calls) == 1
