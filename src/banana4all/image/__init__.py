"""统一图片生成入口"""

from .base import (
    Bounds,
    ErrorKind,
    GenerationMode,
    GenerationRequest,
    ImageError,
    ImageProvider,
    ImageResult,
)
from .extract import extract
from .router import ImageRouter
from .transport import HttpTransport

__all__ = [
    "Bounds",
    "ErrorKind",
    "GenerationMode",
    "GenerationRequest",
    "HttpTransport",
    "ImageError",
    "ImageProvider",
    "ImageResult",
    "ImageRouter",
    "extract",
]
