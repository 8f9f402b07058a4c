"""从 chat-completion 风格的上游响应里提取图片

不同模型把图片放在不同位置，按固定优先级依次尝试下列探测函数，命中即停止:

1. content 为分段数组：``image_url`` 段（data URL）或 ``inline_data`` 段
2. content 为以 ``data:image`` 开头的字符串
3. content 字符串中间嵌有 data URL
4. content 是纯 base64 字符串（长度 > 100）
5. message.images[0].image_url.url
6. message.image 字段原样作为图片数据

每个探测函数都是纯函数，返回 ``_Match`` 或 None。
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any, NamedTuple

from .base import DEFAULT_MIME_TYPE, ErrorKind, ImageError, ImageResult, is_base64

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"data:image/([^;]+);base64,(.+)")
_EMBEDDED_DATA_URL_RE = re.compile(r"data:image/([^;]+);base64,([A-Za-z0-9+/=]+)")

RAW_BASE64_MIN_LENGTH = 100
PREVIEW_LENGTH = 200


class _Match(NamedTuple):
    mime_type: str
    data: str
    strategy: str


def _parse_data_url(url: Any) -> tuple[str, str] | None:
    """``data:image/<subtype>;base64,<payload>`` → (mime_type, payload)"""
    if not isinstance(url, str) or not url.startswith("data:image"):
        return None
    m = _DATA_URL_RE.match(url)
    if not m:
        return None
    return f"image/{m.group(1)}", m.group(2)


def _inline_data(part: dict[str, Any]) -> tuple[str, str] | None:
    inline = part.get("inline_data") or part.get("inlineData")
    if not isinstance(inline, dict):
        return None
    data = inline.get("data")
    if not isinstance(data, str) or not data:
        return None
    mime = inline.get("mime_type") or inline.get("mimeType") or DEFAULT_MIME_TYPE
    return mime, data


def _probe_part_array(message: dict[str, Any]) -> _Match | None:
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for part in content:
        if not isinstance(part, dict):
            continue
        if part.get("type") == "image_url" and isinstance(part.get("image_url"), dict):
            found = _parse_data_url(part["image_url"].get("url"))
            if found:
                return _Match(*found, "array image_url")
        found = _inline_data(part)
        if found:
            return _Match(*found, "array inline_data")
    return None


def _probe_data_url_string(message: dict[str, Any]) -> _Match | None:
    found = _parse_data_url(message.get("content"))
    if found:
        return _Match(*found, "string data URL")
    return None


def _probe_embedded_data_url(message: dict[str, Any]) -> _Match | None:
    content = message.get("content")
    if not isinstance(content, str) or content.startswith("data:image"):
        return None
    m = _EMBEDDED_DATA_URL_RE.search(content)
    if not m:
        return None
    return _Match(f"image/{m.group(1)}", m.group(2), "embedded data URL")


def _probe_raw_base64(message: dict[str, Any]) -> _Match | None:
    content = message.get("content")
    if not isinstance(content, str) or len(content) <= RAW_BASE64_MIN_LENGTH:
        return None
    if not is_base64(content):
        return None
    return _Match(DEFAULT_MIME_TYPE, content, "raw base64")


def _probe_images_list(message: dict[str, Any]) -> _Match | None:
    images = message.get("images")
    if not isinstance(images, list) or not images:
        return None
    first = images[0]
    if not isinstance(first, dict) or not isinstance(first.get("image_url"), dict):
        logger.debug("images[0] 缺少 image_url: %s", json.dumps(first)[:PREVIEW_LENGTH])
        return None
    found = _parse_data_url(first["image_url"].get("url"))
    if found:
        return _Match(*found, "images list")
    return None


def _probe_image_field(message: dict[str, Any]) -> _Match | None:
    image = message.get("image")
    if isinstance(image, str) and image:
        return _Match(DEFAULT_MIME_TYPE, image, "image field")
    return None


PROBES: list[Callable[[dict[str, Any]], _Match | None]] = [
    _probe_part_array,
    _probe_data_url_string,
    _probe_embedded_data_url,
    _probe_raw_base64,
    _probe_images_list,
    _probe_image_field,
]


def describe_type(value: Any) -> str:
    """JSON 视角下的类型名，用于诊断信息"""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    return "object"


def preview(value: Any, limit: int = PREVIEW_LENGTH) -> str:
    return json.dumps(value, ensure_ascii=False)[:limit]


def _source_text(content: Any) -> str | None:
    if isinstance(content, list):
        texts = [
            p["text"]
            for p in content
            if isinstance(p, dict) and p.get("type") == "text" and p.get("text")
        ]
        return "\n".join(texts) or None
    if isinstance(content, str) and "data:image" in content:
        text = content[: content.find("data:image")].strip()
        return text or None
    return None


def extract_from_message(
    message: dict[str, Any], *, provider: str = "", model: str = ""
) -> ImageResult | ImageError:
    """对单个 message 依次运行探测函数"""
    for probe in PROBES:
        match = probe(message)
        if match:
            logger.info(
                "找到图片 (%s, %s), base64 长度: %d",
                match.strategy,
                match.mime_type,
                len(match.data),
            )
            return ImageResult(
                base64=match.data,
                mime_type=match.mime_type,
                source_text=_source_text(message.get("content")),
                provider=provider,
                model=model,
            )

    content = message.get("content")
    content_type = describe_type(content)
    content_preview = preview(content)
    logger.error("响应中未找到图片: content 类型=%s, 预览=%s", content_type, content_preview)
    return ImageError(
        kind=ErrorKind.NO_IMAGE_IN_RESPONSE,
        detail=(
            "The model did not return an image. "
            "Try a different model or check the response format."
        ),
        content_type=content_type,
        content_preview=content_preview,
        provider=provider,
    )


def extract(
    raw_body: str | bytes, *, provider: str = "", model: str = ""
) -> ImageResult | ImageError:
    """解析上游 200 响应体，返回唯一一张图片或描述性错误"""
    try:
        data = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        logger.error("上游响应不是合法 JSON: %s", e)
        return ImageError(
            kind=ErrorKind.PARSE_FAILURE, detail=str(e), provider=provider
        )

    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices:
        detail = "Response contains no choices"
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            detail = f"{detail}: {data['error'].get('message', '')}"
        logger.error("上游响应结构异常: %s", preview(data))
        return ImageError(kind=ErrorKind.PARSE_FAILURE, detail=detail, provider=provider)

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        return ImageError(
            kind=ErrorKind.PARSE_FAILURE,
            detail="Response choice has no message",
            provider=provider,
        )

    logger.debug("content 类型: %s", describe_type(message.get("content")))
    return extract_from_message(message, provider=provider, model=model)
