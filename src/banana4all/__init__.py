"""Banana4All - 图片生成本地转发代理"""

from .config import ProxyConfig
from .image import GenerationRequest, ImageError, ImageResult, ImageRouter

__version__ = "1.0.0"

__all__ = [
    "GenerationRequest",
    "ImageError",
    "ImageResult",
    "ImageRouter",
    "ProxyConfig",
]
