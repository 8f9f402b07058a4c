"""代理服务配置

启动时从环境变量读取一次，之后只读，显式传给 router / adapter / transport。

环境变量:
    BANANA4ALL_HOST: 监听地址（默认 localhost）
    BANANA4ALL_PORT: 监听端口（默认 3000）
    BANANA4ALL_DEFAULT_PROVIDER: 未指定 provider 时使用（默认 openrouter）
    BANANA4ALL_TIMEOUT: 上游请求超时秒数（默认 120）
    BANANA4ALL_REFERER / BANANA4ALL_TITLE: 上游统计用的来源标识
    BANANA4ALL_LOG_LEVEL: 日志级别（默认 INFO）
    OPENROUTER_BASE_URL: OpenRouter API 地址（默认 https://openrouter.ai/api/v1）
    OPENROUTER_MODEL: OpenRouter 默认模型（默认 google/gemini-2.5-flash-image）
    GOOGLE_AI_BASE_URL: Google AI 地址（默认 https://generativelanguage.googleapis.com）
    GOOGLE_AI_MODEL: Google AI 默认模型（默认 gemini-2.5-flash-image-preview）
"""

import os
from dataclasses import dataclass
from typing import Mapping

SERVICE_NAME = "Banana4All Proxy"


@dataclass(frozen=True)
class ProxyConfig:
    """进程级配置，构造后不可变"""

    host: str = "localhost"
    port: int = 3000
    default_provider: str = "openrouter"
    timeout: float = 120.0
    referer: str = "https://github.com/Aladin147/banana4all"
    title: str = "Banana4All Photoshop Plugin"
    log_level: str = "INFO"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "google/gemini-2.5-flash-image"
    google_base_url: str = "https://generativelanguage.googleapis.com"
    google_model: str = "gemini-2.5-flash-image-preview"

    @property
    def attribution_headers(self) -> dict[str, str]:
        """所有上游请求都带的来源标识头"""
        return {"HTTP-Referer": self.referer, "X-Title": self.title}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProxyConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            host=env.get("BANANA4ALL_HOST", defaults.host),
            port=int(env.get("BANANA4ALL_PORT", defaults.port)),
            default_provider=env.get(
                "BANANA4ALL_DEFAULT_PROVIDER", defaults.default_provider
            ),
            timeout=float(env.get("BANANA4ALL_TIMEOUT", defaults.timeout)),
            referer=env.get("BANANA4ALL_REFERER", defaults.referer),
            title=env.get("BANANA4ALL_TITLE", defaults.title),
            log_level=env.get("BANANA4ALL_LOG_LEVEL", defaults.log_level).upper(),
            openrouter_base_url=env.get(
                "OPENROUTER_BASE_URL", defaults.openrouter_base_url
            ).rstrip("/"),
            openrouter_model=env.get("OPENROUTER_MODEL", defaults.openrouter_model),
            google_base_url=env.get(
                "GOOGLE_AI_BASE_URL", defaults.google_base_url
            ).rstrip("/"),
            google_model=env.get("GOOGLE_AI_MODEL", defaults.google_model),
        )
