"""OpenRouter 图片生成（chat-completions 多模态接口）"""

import json
import logging
from typing import Any

from ...config import ProxyConfig
from ..base import (
    ErrorKind,
    GenerationMode,
    GenerationRequest,
    ImageError,
    ImageProvider,
    ImageResult,
)
from ..extract import extract
from ..transport import HttpTransport

logger = logging.getLogger(__name__)

IMAGE_PROMPT_PREFIX = "Generate an image of "
# 包含任一关键词时认为 prompt 已经明确要求出图
_IMPERATIVE_MARKERS = ("generate", "create", "draw")


def build_image_prompt(prompt: str) -> str:
    """部分模型默认回复文字，文生图时补上明确的出图指令"""
    lowered = prompt.lower()
    if any(marker in lowered for marker in _IMPERATIVE_MARKERS):
        return prompt
    return f"{IMAGE_PROMPT_PREFIX}{prompt}"


def _image_message(prompt: str, data_url: str) -> list[dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": data_url}},
            ],
        }
    ]


def _redact(body: dict[str, Any]) -> str:
    """日志用：去掉 base64 图片内容"""
    text = json.dumps(body, ensure_ascii=False)
    for message in body.get("messages", []):
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for part in content:
            url = part.get("image_url", {}).get("url", "")
            if url:
                text = text.replace(url, f"{url[:30]}...({len(url)} chars)")
    return text


class OpenRouterProvider(ImageProvider):
    """OpenRouter 多模态模型，返回 OpenAI 风格的 choices/message"""

    def __init__(self, *, config: ProxyConfig, transport: HttpTransport):
        self.config = config
        self.transport = transport

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def default_model(self) -> str:
        return self.config.openrouter_model

    @property
    def url(self) -> str:
        return f"{self.config.openrouter_base_url}/chat/completions"

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        model = self.resolve_model(request)

        if request.mode is GenerationMode.INPAINT and request.has_image:
            # 语义局部重绘：只发裁剪区域 + 指令，不发 mask
            return {
                "model": model,
                "modalities": ["image", "text"],
                "n": 1,
                "messages": _image_message(
                    request.prompt, f"data:image/png;base64,{request.image_data}"
                ),
            }

        if request.has_image:
            return {
                "model": model,
                "messages": _image_message(
                    request.prompt, f"data:image/jpeg;base64,{request.image_data}"
                ),
            }

        # 只要图片输出，文字输出成本高得多
        return {
            "model": model,
            "modalities": ["image"],
            "n": 1,
            "messages": [{"role": "user", "content": build_image_prompt(request.prompt)}],
        }

    async def generate(self, request: GenerationRequest) -> ImageResult | ImageError:
        body = self.build_body(request)
        model = body["model"]
        logger.info("转发到 OpenRouter: model=%s, mode=%s", model, request.mode.value)
        logger.debug("OpenRouter 请求体: %s", _redact(body))

        resp = await self.transport.send(
            self.url,
            body,
            {"Authorization": f"Bearer {request.credential}"},
            provider=self.name,
        )
        if isinstance(resp, ImageError):
            return resp

        if not resp.ok:
            logger.error("OpenRouter 错误: %s %s", resp.status, resp.raw_body[:500])
            return ImageError(
                kind=ErrorKind.UPSTREAM_HTTP_ERROR,
                detail=resp.raw_body,
                http_status=resp.status,
                content_type=resp.content_type,
                provider=self.name,
            )

        return extract(resp.raw_body, provider=self.name, model=model)
