"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .chat.orchestrator import ChatOrchestrator
from .config import PROJECT_ROOT, Settings, get_settings
from .logging_settings import apply_logging_settings, parse_logging_settings
from .routers.chat import router as chat_router
from .routers.conversations import router as conversations_router


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_file = os.getenv("LOG_FILE")
    handlers: list[logging.Handler] = []
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("streamrelay").setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    logging.getLogger("httpx").setLevel(log_level)
    logging.getLogger("httpcore").setLevel(log_level)

    # Quiet noisy transport logs unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _apply_area_levels(settings: Settings) -> None:
    path = settings.logging_settings_path
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    if path.exists():
        apply_logging_settings(parse_logging_settings(path))


def create_app(orchestrator: ChatOrchestrator | None = None) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = get_settings()
    _apply_area_levels(settings)

    if orchestrator is None:
        orchestrator = ChatOrchestrator(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await orchestrator.initialize()
        try:
            yield
        finally:
            # Add timeout to prevent hanging during shutdown (especially in tests)
            try:
                await asyncio.wait_for(orchestrator.shutdown(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("Orchestrator shutdown timed out after 10s")
            except Exception as exc:
                logging.warning("Error during orchestrator shutdown: %s", exc)

    app = FastAPI(
        title="Stream Relay",
        version=__version__,
        description="SSE relay for streaming model responses with an agentic tool loop.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.chat_orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(conversations_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | None]:
        return {
            "status": "ok",
            "default_model": settings.default_model,
        }

    return app


__all__ = ["create_app"]
