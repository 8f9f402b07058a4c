"""Tests for the plugin-side proxy client."""

import httpx
import pytest
from PIL import Image
from pytest_httpx import HTTPXMock

from banana4all.client import (
    ProxyClient,
    ProxyError,
    build_inpaint_prompt,
    parse_envelope,
    save_image,
)
from banana4all.image.base import Bounds, ImageResult
from tests.conftest import PNG_1X1

PROXY = "http://proxy.test"
GENERATE_URL = f"{PROXY}/api/generate"

ENVELOPE = {
    "candidates": [
        {"content": {"parts": [{"inline_data": {"mime_type": "image/png", "data": PNG_1X1}}]}}
    ]
}


def make_client(**kwargs) -> ProxyClient:
    return ProxyClient(api_key="sk-test", proxy_url=PROXY, base_delay=0, **kwargs)


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=f"{PROXY}/health", json={"status": "ok"})

        async with make_client() as client:
            assert await client.check_health() is True

    @pytest.mark.asyncio
    async def test_proxy_down(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"), url=f"{PROXY}/health")

        async with make_client() as client:
            assert await client.check_health() is False


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=GENERATE_URL, method="POST", json=ENVELOPE)

        async with make_client(provider="openrouter", model="m") as client:
            result = await client.generate("a fox")

        assert result.base64 == PNG_1X1
        sent = httpx_mock.get_request()
        assert b'"apiKey":"sk-test"' in sent.content.replace(b" ", b"")
        assert b'"provider":"openrouter"' in sent.content.replace(b" ", b"")

    @pytest.mark.asyncio
    async def test_inpaint_wraps_prompt(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=GENERATE_URL, method="POST", json=ENVELOPE)

        async with make_client() as client:
            await client.generate(
                "a blue sky",
                image_data="QUJD",
                mode="inpaint",
                bounds=Bounds(left=1, top=2, width=30, height=40),
            )

        sent = httpx_mock.get_request().content.decode()
        assert "Edit only the selected area in this image crop: a blue sky." in sent
        assert '"width":30' in sent.replace(" ", "")

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=GENERATE_URL)
        httpx_mock.add_response(url=GENERATE_URL, method="POST", status_code=503, text="busy")
        httpx_mock.add_response(url=GENERATE_URL, method="POST", json=ENVELOPE)

        async with make_client(max_attempts=3) as client:
            result = await client.generate("a fox")

        assert result.base64 == PNG_1X1
        assert len(httpx_mock.get_requests()) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, httpx_mock: HTTPXMock) -> None:
        for _ in range(2):
            httpx_mock.add_response(
                url=GENERATE_URL,
                method="POST",
                status_code=500,
                json={"error": "Failed to connect to OpenRouter", "details": "timeout"},
            )

        async with make_client(max_attempts=2) as client:
            with pytest.raises(ProxyError) as exc_info:
                await client.generate("a fox")

        assert exc_info.value.status_code == 500
        assert exc_info.value.retryable
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "body"),
        [
            (400, {"error": "API key is required"}),
            (401, {"error": {"message": "No auth credentials found", "code": 401}}),
            (500, {"error": "No image data in response", "details": "..."}),
        ],
    )
    async def test_terminal_errors_not_retried(
        self, httpx_mock: HTTPXMock, status: int, body: dict
    ) -> None:
        httpx_mock.add_response(url=GENERATE_URL, method="POST", status_code=status, json=body)

        async with make_client(max_attempts=3) as client:
            with pytest.raises(ProxyError) as exc_info:
                await client.generate("a fox")

        assert exc_info.value.status_code == status
        assert not exc_info.value.retryable
        assert len(httpx_mock.get_requests()) == 1


class TestHelpers:
    def test_build_inpaint_prompt(self) -> None:
        prompt = build_inpaint_prompt("remove the car")

        assert prompt.startswith("Edit only the selected area in this image crop: remove the car.")
        assert prompt.endswith("Blend naturally with surrounding areas.")

    def test_parse_envelope_without_image(self) -> None:
        with pytest.raises(ProxyError):
            parse_envelope({"candidates": [{"content": {"parts": [{"text": "hi"}]}}]})

    def test_parse_envelope_malformed(self) -> None:
        with pytest.raises(ProxyError):
            parse_envelope({"candidates": []})

    def test_save_image(self, tmp_path) -> None:
        path = save_image(ImageResult(base64=PNG_1X1), tmp_path / "out.png")

        with Image.open(path) as img:
            assert img.size == (1, 1)

    def test_save_image_as_jpeg_converts_mode(self, tmp_path) -> None:
        path = save_image(ImageResult(base64=PNG_1X1), tmp_path / "out.jpg")

        with Image.open(path) as img:
            assert img.format == "JPEG"
            assert img.mode == "RGB"
