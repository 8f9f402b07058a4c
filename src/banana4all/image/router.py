"""请求路由

校验请求 → 按名称选择 provider → 原样返回 provider 的结果或错误。
校验失败在发出任何上游请求之前返回。
"""

import logging

from ..config import ProxyConfig
from .base import (
    ErrorKind,
    GenerationMode,
    GenerationRequest,
    ImageError,
    ImageProvider,
    ImageResult,
    is_base64,
)
from .providers.google import GoogleProvider
from .providers.openrouter import OpenRouterProvider
from .transport import HttpTransport

logger = logging.getLogger(__name__)

# 已注册的 provider 工厂
PROVIDER_FACTORIES: dict[str, type] = {
    "openrouter": OpenRouterProvider,
    "google": GoogleProvider,
}

_PROMPT_LOG_LENGTH = 50


def _invalid(detail: str) -> ImageError:
    return ImageError(kind=ErrorKind.INVALID_INPUT, detail=detail)


def validate(request: GenerationRequest) -> ImageError | None:
    """请求级校验，不触发任何网络调用"""
    if not request.credential:
        return ImageError(kind=ErrorKind.MISSING_CREDENTIAL, detail="API key is required")

    if request.mode is GenerationMode.INPAINT:
        if not request.image_data:
            return _invalid("Semantic inpainting requires imageData (cropped region)")
        if not is_base64(request.image_data):
            return _invalid("Invalid imageData format - must be base64")

    if request.bounds is not None and not request.bounds.is_valid:
        return _invalid("Selection bounds must have positive width and height")

    if not request.has_image and not request.prompt:
        return _invalid("Prompt is required for text-to-image generation")

    return None


class ImageRouter:
    """统一图片生成入口

    用法:
        router = ImageRouter(config=ProxyConfig.from_env(), transport=transport)
        outcome = await router.route(GenerationRequest(credential=key, prompt="一只猫"))
        if isinstance(outcome, ImageError):
            ...
    """

    def __init__(
        self,
        *,
        config: ProxyConfig,
        transport: HttpTransport | None = None,
        providers: dict[str, ImageProvider] | None = None,
    ):
        self.config = config
        if providers is None:
            transport = transport or HttpTransport(config)
            providers = {
                name: factory(config=config, transport=transport)
                for name, factory in PROVIDER_FACTORIES.items()
            }
        self._providers = providers

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    def select(self, name: str | None) -> ImageProvider | ImageError:
        provider = self._providers.get(name or self.config.default_provider)
        if provider is None:
            return _invalid(f"Unknown provider: {name}")
        return provider

    async def route(self, request: GenerationRequest) -> ImageResult | ImageError:
        error = validate(request)
        if error:
            logger.warning("请求校验失败: %s - %s", error.kind.value, error.detail)
            return error

        provider = self.select(request.provider)
        if isinstance(provider, ImageError):
            logger.warning("未知 provider: %s", request.provider)
            return provider

        prompt = request.prompt[:_PROMPT_LOG_LENGTH] if request.prompt else "image edit"
        logger.info(
            "收到请求: mode=%s, provider=%s, model=%s, prompt=%s...",
            request.mode.value,
            provider.name,
            provider.resolve_model(request),
            prompt,
        )
        if request.bounds is not None:
            b = request.bounds
            logger.info("选区: %sx%s at (%s, %s)", b.width, b.height, b.left, b.top)
        if request.mask_image:
            logger.debug("maskImage 已忽略，语义重绘只使用指令文本")

        return await provider.generate(request)
