"""Tests for the outbound HTTP transport."""

import httpx
import pytest
from pytest_httpx import HTTPXMock

from banana4all.image.base import ErrorKind, ImageError, TransportResponse
from banana4all.image.transport import HttpTransport

URL = "https://upstream.test/v1/generate"


@pytest.mark.asyncio
async def test_send_returns_raw_response(transport: HttpTransport, httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=URL, method="POST", status_code=418, text="teapot")

    resp = await transport.send(URL, {"a": 1}, {"X-Extra": "1"})

    assert isinstance(resp, TransportResponse)
    assert resp.status == 418
    assert resp.raw_body == "teapot"
    assert not resp.ok
    sent = httpx_mock.get_request()
    assert sent.headers["X-Extra"] == "1"
    assert sent.headers["X-Title"] == "Banana4All Photoshop Plugin"
    assert sent.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_single_attempt_on_network_error(
    transport: HttpTransport, httpx_mock: HTTPXMock
) -> None:
    httpx_mock.add_exception(httpx.ConnectError("Name or service not known"), url=URL)

    resp = await transport.send(URL, {}, provider="openrouter")

    assert isinstance(resp, ImageError)
    assert resp.kind is ErrorKind.TRANSPORT_FAILURE
    assert "Name or service not known" in resp.detail
    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_timeout(transport: HttpTransport, httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectTimeout("slow"), url=URL)

    resp = await transport.send(URL, {})

    assert isinstance(resp, ImageError)
    assert resp.detail == "timeout"
