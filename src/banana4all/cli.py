"""命令行入口

    banana4all serve                       启动本地代理
    banana4all health                      检查代理是否在运行
    banana4all generate "a red fox" -o fox.png --api-key sk-or-...
"""

import argparse
import asyncio
import base64
import logging
import os
import sys
from pathlib import Path

from .client import DEFAULT_PROXY_URL, ProxyClient, ProxyError, save_image
from .config import SERVICE_NAME, ProxyConfig
from .image.base import Bounds, GenerationMode

logger = logging.getLogger(__name__)


def _serve(args: argparse.Namespace, config: ProxyConfig) -> int:
    import uvicorn

    from .server import create_app

    host = args.host or config.host
    port = args.port or config.port
    logger.info("%s: http://%s:%s (health: /health, api: /api/generate)", SERVICE_NAME, host, port)
    uvicorn.run(create_app(config), host=host, port=port, log_level=config.log_level.lower())
    return 0


async def _health(args: argparse.Namespace) -> int:
    async with ProxyClient(api_key="", proxy_url=args.proxy_url) as client:
        ok = await client.check_health()
    print("ok" if ok else "unreachable")
    return 0 if ok else 1


def _parse_bounds(value: str) -> Bounds:
    try:
        left, top, width, height = (float(x) for x in value.split(","))
    except ValueError as e:
        raise argparse.ArgumentTypeError("bounds 格式: left,top,width,height") from e
    return Bounds(left=left, top=top, width=width, height=height)


async def _generate(args: argparse.Namespace) -> int:
    api_key = args.api_key or os.environ.get("BANANA4ALL_API_KEY", "")
    image_data = None
    if args.image:
        image_data = base64.b64encode(Path(args.image).read_bytes()).decode("ascii")

    async with ProxyClient(
        api_key=api_key,
        proxy_url=args.proxy_url,
        provider=args.provider,
        model=args.model,
        max_attempts=args.retries,
    ) as client:
        try:
            result = await client.generate(
                args.prompt,
                image_data=image_data,
                mode=args.mode,
                bounds=args.bounds,
            )
        except ProxyError as e:
            logger.error("生成失败: %s", e)
            return 1

    try:
        path = save_image(result, args.output)
    except (OSError, ValueError) as e:
        logger.error("保存图片失败: %s", e)
        return 1
    print(path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="banana4all", description=SERVICE_NAME)
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="启动本地代理")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    health = sub.add_parser("health", help="检查代理状态")
    health.add_argument("--proxy-url", default=DEFAULT_PROXY_URL)

    gen = sub.add_parser("generate", help="通过代理生成一张图片")
    gen.add_argument("prompt")
    gen.add_argument("-o", "--output", default="output.png")
    gen.add_argument("--api-key", default=None, help="默认读取 BANANA4ALL_API_KEY")
    gen.add_argument("--image", default=None, help="编辑/重绘用的输入图片")
    gen.add_argument(
        "--mode", choices=[m.value for m in GenerationMode], default=GenerationMode.FULL.value
    )
    gen.add_argument("--bounds", type=_parse_bounds, default=None)
    gen.add_argument("--provider", default=None)
    gen.add_argument("--model", default=None)
    gen.add_argument("--proxy-url", default=DEFAULT_PROXY_URL)
    gen.add_argument("--retries", type=int, default=3)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = ProxyConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        return _serve(args, config)
    if args.command == "health":
        return asyncio.run(_health(args))
    return asyncio.run(_generate(args))


if __name__ == "__main__":
    sys.exit(main())
