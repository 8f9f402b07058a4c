"""上游 HTTP 调用

每次调用只发一次，不做重试（重试由调用方客户端负责）。
超时或网络错误返回 TransportFailure，不抛异常。
"""

import logging
from typing import Any

import httpx

from ..config import ProxyConfig
from .base import ErrorKind, ImageError, TransportResponse

logger = logging.getLogger(__name__)


class HttpTransport:
    """共享连接池的异步 HTTP 发送器，所有 provider 复用"""

    def __init__(
        self,
        config: ProxyConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    async def send(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
        *,
        params: dict[str, str] | None = None,
        provider: str = "",
    ) -> TransportResponse | ImageError:
        merged = {
            "Content-Type": "application/json",
            **self.config.attribution_headers,
            **(headers or {}),
        }
        try:
            resp = await self.client.post(url, json=body, headers=merged, params=params)
        except httpx.TimeoutException:
            logger.error("%s 请求超时 (%.0fs): %s", provider or "上游", self.config.timeout, url)
            return ImageError(
                kind=ErrorKind.TRANSPORT_FAILURE, detail="timeout", provider=provider
            )
        except httpx.HTTPError as e:
            logger.error("连接 %s 失败: %s", provider or "上游", e)
            return ImageError(
                kind=ErrorKind.TRANSPORT_FAILURE,
                detail=str(e) or type(e).__name__,
                provider=provider,
            )

        logger.info("%s 响应: %s", provider or "上游", resp.status_code)
        return TransportResponse(
            status=resp.status_code,
            raw_body=resp.text,
            content_type=resp.headers.get("content-type", ""),
        )

    async def close(self) -> None:
        await self.client.aclose()
