"""图片生成抽象接口与请求级数据模型

核心操作不抛异常，统一返回 ``ImageResult | ImageError``，调用方必须显式处理两种结果。
"""

import base64
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

DEFAULT_MIME_TYPE = "image/png"

_BASE64_RE = re.compile(r"[A-Za-z0-9+/=]+")


def is_base64(value: str) -> bool:
    """字符串是否只由 base64 字母表字符组成（非空）"""
    return bool(value) and _BASE64_RE.fullmatch(value) is not None


class GenerationMode(str, Enum):
    FULL = "full"
    INPAINT = "inpaint"
    EDIT = "edit"


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "MissingCredential"
    INVALID_INPUT = "InvalidInput"
    UPSTREAM_HTTP_ERROR = "UpstreamHTTPError"
    NO_IMAGE_IN_RESPONSE = "NoImageInResponse"
    PARSE_FAILURE = "ParseFailure"
    TRANSPORT_FAILURE = "TransportFailure"


@dataclass(frozen=True)
class Bounds:
    """选区位置（宿主文档坐标）"""

    left: float
    top: float
    width: float
    height: float

    @property
    def is_valid(self) -> bool:
        return self.width > 0 and self.height > 0


@dataclass(frozen=True)
class GenerationRequest:
    """一次生成请求，请求结束即丢弃"""

    credential: str
    prompt: str = ""
    model: str = ""
    mode: GenerationMode = GenerationMode.FULL
    image_data: str | None = None
    bounds: Bounds | None = None
    provider: str | None = None
    # 接收但不转发给上游，见 DESIGN.md
    content_image: str | None = None
    mask_image: str | None = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_data)


@dataclass(frozen=True)
class ImageResult:
    """图片生成结果"""

    base64: str
    mime_type: str = DEFAULT_MIME_TYPE
    source_text: str | None = None
    provider: str = ""
    model: str = ""

    def decode(self) -> bytes:
        return base64.b64decode(self.base64)

    def to_envelope(self) -> dict[str, Any]:
        """转为统一响应结构，与上游 provider 无关"""
        return {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {
                                "inline_data": {
                                    "mime_type": self.mime_type,
                                    "data": self.base64,
                                }
                            }
                        ]
                    }
                }
            ]
        }


@dataclass(frozen=True)
class ImageError:
    """统一错误值"""

    kind: ErrorKind
    detail: str
    http_status: int | None = None
    content_type: str | None = None
    content_preview: str | None = None
    provider: str = ""


@dataclass(frozen=True)
class TransportResponse:
    """上游原始响应"""

    status: int
    raw_body: str
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 200


class ImageProvider(ABC):
    """图片生成 Provider 抽象基类"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider 名称"""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """未指定模型时使用"""

    @abstractmethod
    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        """按 provider 格式构造请求体，纯函数"""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> ImageResult | ImageError:
        """发送请求并解析出一张图片"""

    def resolve_model(self, request: GenerationRequest) -> str:
        return request.model or self.default_model
