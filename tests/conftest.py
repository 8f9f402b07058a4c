"""Shared pytest fixtures.

All upstream HTTP traffic in tests goes through pytest-httpx's ``httpx_mock``
or through fake providers; no test reaches a real provider.
"""

import json
from typing import Any

import pytest

from banana4all.config import ProxyConfig
from banana4all.image.transport import HttpTransport

OPENROUTER_URL = "https://openrouter.test/api/v1/chat/completions"
GOOGLE_BASE_URL = "https://google.test"

# 1x1 transparent PNG
PNG_1X1 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def chat_response(message: dict[str, Any]) -> dict[str, Any]:
    """Wrap a message in an OpenAI-style chat-completion response."""
    return {
        "id": "gen-test",
        "model": "google/gemini-2.5-flash-image",
        "choices": [{"index": 0, "finish_reason": "stop", "message": message}],
    }


def chat_body(message: dict[str, Any]) -> str:
    return json.dumps(chat_response(message))


@pytest.fixture
def config() -> ProxyConfig:
    return ProxyConfig(
        openrouter_base_url="https://openrouter.test/api/v1",
        google_base_url=GOOGLE_BASE_URL,
        timeout=5.0,
    )


@pytest.fixture
def transport(config: ProxyConfig) -> HttpTransport:
    return HttpTransport(config)
