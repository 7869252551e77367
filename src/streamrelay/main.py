"""CLI entrypoint for running the relay with uvicorn."""

from __future__ import annotations

import argparse
from typing import Sequence

import uvicorn

from .config import get_settings

APP_FACTORY = "streamrelay.app:create_app"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the streaming relay server")
    parser.add_argument("--host", help="Bind address (defaults to RELAY_HOST)")
    parser.add_argument("--port", type=int, help="Bind port (defaults to RELAY_PORT)")
    parser.add_argument(
        "--reload",
        action="store_true",
        default=None,
        help="Restart on code changes",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Run the ASGI server, preferring flags over configured defaults."""

    args = build_parser().parse_args(argv)
    settings = get_settings()
    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        reload=settings.server_reload if args.reload is None else args.reload,
    )


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main()
