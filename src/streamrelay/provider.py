"""Anthropic Messages API streaming client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator

import httpx
from fastapi import status

from .chat.streaming.parser import ServerSentEvent, iter_sse_events
from .config import Settings

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Wrap transport or API failures when communicating with the model provider."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class ProviderConnectionError(ProviderError):
    """The connection to the provider failed or dropped mid-stream."""


class AnthropicClient:
    """Client responsible for streaming message responses from the provider."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._settings.anthropic_api_key.get_secret_value(),
            "anthropic-version": self._settings.anthropic_version,
            "content-type": "application/json",
            "accept": "text/event-stream",
        }

    @property
    def _base_url(self) -> str:
        """Return the API base URL without a trailing slash."""

        return str(self._settings.anthropic_base_url).rstrip("/")

    async def stream_messages(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[ServerSentEvent, None]:
        """Stream a Messages API call, yielding events as each frame completes."""

        url = f"{self._base_url}/messages"
        body = dict(payload)
        body["stream"] = True

        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST",
                url,
                headers=self._headers,
                json=body,
            ) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    detail = self._extract_error_detail(raw)
                    raise ProviderError(response.status_code, detail)

                request_id = response.headers.get("request-id")
                if request_id:
                    logger.debug("Provider stream opened (request-id=%s)", request_id)

                async for event in iter_sse_events(
                    response.aiter_bytes(),
                    max_buffer_bytes=self._settings.stream_max_buffer_bytes,
                ):
                    yield event
        except httpx.HTTPError as exc:
            raise ProviderConnectionError(
                status.HTTP_502_BAD_GATEWAY, str(exc) or type(exc).__name__
            ) from exc

    async def aclose(self) -> None:
        await self.__class__.aclose_shared()

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                logger.debug("Failed to close provider HTTP client: %s", exc)

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Provider returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"]
            return error or payload
        return payload


__all__ = ["AnthropicClient", "ProviderConnectionError", "ProviderError"]
