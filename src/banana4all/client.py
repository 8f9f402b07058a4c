"""插件侧代理客户端

调用本地代理的 /api/generate，带指数退避重试。
只重试超时、网络错误和上游临时故障（429/502/503/504），
凭证错误、参数错误、模型未返回图片等终态错误不重试。
"""

import io
import logging
from pathlib import Path
from typing import Any

import httpx
from PIL import Image
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .image.base import DEFAULT_MIME_TYPE, Bounds, GenerationMode, ImageResult

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "http://localhost:3000"

INPAINT_PROMPT_TEMPLATE = (
    "Edit only the selected area in this image crop: {prompt}. "
    "Keep all other elements, lighting, colors, shadows, and background "
    "completely unchanged. Blend naturally with surrounding areas."
)

_RETRYABLE_STATUS = {429, 502, 503, 504}


class ProxyError(Exception):
    """代理返回错误或无法连接"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        retryable: bool = False,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        self.body = body


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProxyError) and exc.retryable


def _is_transient(status_code: int, body: Any) -> bool:
    if status_code in _RETRYABLE_STATUS:
        return True
    # 代理连不上上游时返回 500 "Failed to connect to ..."
    error = body.get("error") if isinstance(body, dict) else None
    return status_code == 500 and isinstance(error, str) and error.startswith("Failed to connect")


def build_inpaint_prompt(prompt: str) -> str:
    return INPAINT_PROMPT_TEMPLATE.format(prompt=prompt)


def parse_envelope(data: dict[str, Any]) -> ImageResult:
    """统一响应结构 → ImageResult"""
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise ProxyError(f"代理响应格式异常: {e}", body=data) from e

    for part in parts:
        inline = part.get("inline_data") or part.get("inlineData")
        if inline and inline.get("data"):
            return ImageResult(
                base64=inline["data"],
                mime_type=inline.get("mime_type") or inline.get("mimeType") or DEFAULT_MIME_TYPE,
            )
    raise ProxyError("代理响应中没有图片", body=data)


def save_image(result: ImageResult, path: str | Path, *, format: str | None = None) -> Path:
    """解码并保存图片，格式由扩展名决定（可覆盖）"""
    path = Path(path)
    img = Image.open(io.BytesIO(result.decode()))
    if format is None and path.suffix.lower() in (".jpg", ".jpeg") and img.mode != "RGB":
        img = img.convert("RGB")
    img.save(path, format=format)
    logger.info("图片已保存: %s (%dx%d)", path, img.width, img.height)
    return path


class ProxyClient:
    """本地代理的异步客户端

    用法:
        async with ProxyClient(api_key="sk-or-...") as client:
            result = await client.generate("a red fox")
            save_image(result, "fox.png")
    """

    def __init__(
        self,
        *,
        api_key: str,
        proxy_url: str = DEFAULT_PROXY_URL,
        provider: str | None = None,
        model: str | None = None,
        timeout: float = 120.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
    ):
        self.api_key = api_key
        self.proxy_url = proxy_url.rstrip("/")
        self.provider = provider
        self.model = model
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.client = httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def check_health(self, *, timeout: float = 5.0) -> bool:
        try:
            resp = await self.client.get(f"{self.proxy_url}/health", timeout=timeout)
        except httpx.HTTPError as e:
            logger.warning("代理不可用: %s", e)
            return False
        return resp.is_success

    async def generate(
        self,
        prompt: str,
        *,
        image_data: str | None = None,
        mode: GenerationMode | str = GenerationMode.FULL,
        bounds: Bounds | None = None,
    ) -> ImageResult:
        mode = GenerationMode(mode)
        payload: dict[str, Any] = {"apiKey": self.api_key, "prompt": prompt, "mode": mode.value}
        if mode is GenerationMode.INPAINT:
            payload["prompt"] = build_inpaint_prompt(prompt)
        if image_data:
            payload["imageData"] = image_data
        if bounds is not None:
            payload["bounds"] = {
                "left": bounds.left,
                "top": bounds.top,
                "width": bounds.width,
                "height": bounds.height,
            }
        if self.provider:
            payload["provider"] = self.provider
        if self.model:
            payload["model"] = self.model

        logger.info("请求代理生成: mode=%s, provider=%s", mode.value, self.provider or "default")
        data = await self._post_with_retry("/api/generate", payload)
        return parse_envelope(data)

    async def _post_with_retry(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2),
            before_sleep=lambda state: logger.warning(
                "第 %d 次请求失败，准备重试: %s",
                state.attempt_number,
                state.outcome.exception(),
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                data = await self._post(path, payload)
        return data

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self.client.post(f"{self.proxy_url}{path}", json=payload)
        except httpx.TimeoutException as e:
            raise ProxyError("Request timeout", retryable=True) from e
        except httpx.HTTPError as e:
            raise ProxyError(f"无法连接代理: {e}", retryable=True) from e

        try:
            body = resp.json()
        except ValueError:
            body = resp.text

        if not resp.is_success:
            message = body.get("error", resp.reason_phrase) if isinstance(body, dict) else body
            if isinstance(message, dict):
                message = message.get("message", str(message))
            raise ProxyError(
                f"代理错误 {resp.status_code}: {message}",
                resp.status_code,
                retryable=_is_transient(resp.status_code, body),
                body=body,
            )
        if not isinstance(body, dict):
            raise ProxyError("代理响应不是 JSON 对象", resp.status_code, body=body)
        return body

    async def close(self) -> None:
        await self.client.aclose()
