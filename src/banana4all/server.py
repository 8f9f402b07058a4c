"""本地代理 HTTP 服务

插件只访问 localhost，由本进程负责所有外网请求。
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import SERVICE_NAME, ProxyConfig
from .image import (
    Bounds,
    ErrorKind,
    GenerationMode,
    GenerationRequest,
    HttpTransport,
    ImageError,
    ImageRouter,
)

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-API-Key",
    "Access-Control-Max-Age": "86400",
}

AVAILABLE_ENDPOINTS = ["/health", "/api/generate"]

_PROVIDER_LABELS = {"openrouter": "OpenRouter", "google": "Google AI"}


class BoundsBody(BaseModel):
    left: float = 0
    top: float = 0
    width: float
    height: float


class GenerateBody(BaseModel):
    """POST /api/generate 请求体，字段名与插件保持一致"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None
    prompt: str | None = None
    image_data: str | None = Field(default=None, alias="imageData")
    provider: str | None = None
    mode: GenerationMode | None = None
    content_image: str | None = Field(default=None, alias="contentImage")
    mask_image: str | None = Field(default=None, alias="maskImage")
    bounds: BoundsBody | None = None

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            credential=self.api_key or "",
            prompt=self.prompt or "",
            model=self.model or "",
            mode=self.mode or GenerationMode.FULL,
            image_data=self.image_data,
            bounds=Bounds(**self.bounds.model_dump()) if self.bounds else None,
            provider=self.provider,
            content_image=self.content_image,
            mask_image=self.mask_image,
        )


def _json(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


def error_response(error: ImageError) -> Response:
    """把统一错误映射成插件约定的 HTTP 响应"""
    if error.kind in (ErrorKind.MISSING_CREDENTIAL, ErrorKind.INVALID_INPUT):
        return _json(400, {"error": error.detail})

    if error.kind is ErrorKind.UPSTREAM_HTTP_ERROR:
        # 上游错误原样转发
        return Response(
            content=error.detail,
            status_code=error.http_status or 502,
            media_type="application/json",
        )

    if error.kind is ErrorKind.NO_IMAGE_IN_RESPONSE:
        body = {"error": "No image data in response", "details": error.detail}
        if error.content_type is not None:
            body["contentType"] = error.content_type
        if error.content_preview is not None:
            body["contentPreview"] = error.content_preview
        return _json(500, body)

    if error.kind is ErrorKind.PARSE_FAILURE:
        return _json(500, {"error": "Failed to parse response", "details": error.detail})

    label = _PROVIDER_LABELS.get(error.provider, error.provider or "provider")
    return _json(500, {"error": f"Failed to connect to {label}", "details": error.detail})


def create_app(
    config: ProxyConfig | None = None,
    *,
    router: ImageRouter | None = None,
) -> FastAPI:
    config = config or ProxyConfig.from_env()
    transport = None
    if router is None:
        transport = HttpTransport(config)
        router = ImageRouter(config=config, transport=transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s 启动: http://%s:%s", SERVICE_NAME, config.host, config.port)
        logger.info("可用 provider: %s", ", ".join(router.provider_names))
        yield
        if transport is not None:
            await transport.close()
        logger.info("%s 已停止", SERVICE_NAME)

    app = FastAPI(
        title=SERVICE_NAME,
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.router = router

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return _json(404, {"error": "Not found", "availableEndpoints": AVAILABLE_ENDPOINTS})
        return _json(exc.status_code, {"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        # 凭证检查先于其余字段校验
        if isinstance(exc.body, dict) and not exc.body.get("apiKey"):
            return _json(400, {"error": "API key is required"})
        logger.error("请求解析失败: %s", exc.errors())
        details = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}"
            for e in exc.errors()
        )
        return _json(400, {"error": "Invalid request format", "details": details})

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/api/generate")
    async def generate(body: GenerateBody, request: Request):
        outcome = await request.app.state.router.route(body.to_request())
        if isinstance(outcome, ImageError):
            return error_response(outcome)
        logger.info("已转为统一格式, base64 长度: %d", len(outcome.base64))
        return outcome.to_envelope()

    return app
