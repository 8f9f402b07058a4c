"""Google AI (Gemini) 直连图片生成

上游响应本身就是 candidates/parts 结构，直接取第一段 inline_data。
"""

import json
import logging
from typing import Any

from ...config import ProxyConfig
from ..base import (
    DEFAULT_MIME_TYPE,
    ErrorKind,
    GenerationRequest,
    ImageError,
    ImageProvider,
    ImageResult,
)
from ..extract import describe_type, preview
from ..transport import HttpTransport

logger = logging.getLogger(__name__)


def extract_candidates(
    raw_body: str | bytes, *, provider: str = "google", model: str = ""
) -> ImageResult | ImageError:
    """从 generateContent 响应中取第一张图片，文字段作为 source_text"""
    try:
        data = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        return ImageError(kind=ErrorKind.PARSE_FAILURE, detail=str(e), provider=provider)

    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not isinstance(candidates, list) or not candidates:
        return ImageError(
            kind=ErrorKind.PARSE_FAILURE,
            detail="Response contains no candidates",
            provider=provider,
        )

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []

    texts = [p["text"] for p in parts if isinstance(p, dict) and p.get("text")]
    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inline_data") or part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            return ImageResult(
                base64=inline["data"],
                mime_type=inline.get("mime_type")
                or inline.get("mimeType")
                or DEFAULT_MIME_TYPE,
                source_text="\n".join(texts) or None,
                provider=provider,
                model=model,
            )

    logger.error("Google AI 响应中未找到图片: %s", preview(parts))
    return ImageError(
        kind=ErrorKind.NO_IMAGE_IN_RESPONSE,
        detail="The model did not return an image.",
        content_type=describe_type(parts),
        content_preview=preview(parts),
        provider=provider,
    )


class GoogleProvider(ImageProvider):
    """Google AI generateContent，API key 走 query 参数"""

    def __init__(self, *, config: ProxyConfig, transport: HttpTransport):
        self.config = config
        self.transport = transport

    @property
    def name(self) -> str:
        return "google"

    @property
    def default_model(self) -> str:
        return self.config.google_model

    def url_for(self, model: str) -> str:
        return f"{self.config.google_base_url}/v1beta/models/{model}:generateContent"

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if request.prompt:
            parts.append({"text": request.prompt})
        if request.has_image:
            parts.append(
                {"inline_data": {"mime_type": "image/jpeg", "data": request.image_data}}
            )
        return {"contents": [{"parts": parts}]}

    async def generate(self, request: GenerationRequest) -> ImageResult | ImageError:
        model = self.resolve_model(request)
        body = self.build_body(request)
        logger.info("转发到 Google AI: model=%s, parts=%d", model, len(body["contents"][0]["parts"]))

        resp = await self.transport.send(
            self.url_for(model),
            body,
            params={"key": request.credential},
            provider=self.name,
        )
        if isinstance(resp, ImageError):
            return resp

        if not resp.ok:
            logger.error("Google AI 错误: %s %s", resp.status, resp.raw_body[:500])
            return ImageError(
                kind=ErrorKind.UPSTREAM_HTTP_ERROR,
                detail=resp.raw_body,
                http_status=resp.status,
                content_type=resp.content_type,
                provider=self.name,
            )

        return extract_candidates(resp.raw_body, provider=self.name, model=model)
