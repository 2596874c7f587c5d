"""Async client for the OpenRouter chat-completions API."""

import logging
from typing import Any

import httpx

from erpsync.core.config import settings

logger = logging.getLogger(__name__)


class OpenRouterError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OpenRouterClient:
    """Thin wrapper over ``httpx.AsyncClient`` bound to the OpenRouter API.

    The HTTP client is created lazily and recreated after :meth:`close`.
    """

    def __init__(self, api_key: str | None = None, timeout: float = 60.0):
        self.api_key = api_key if api_key is not None else settings.OPENROUTER_API_KEY
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=settings.OPENROUTER_BASE_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "HTTP-Referer": f"https://{settings.APP_DOMAIN}",
                    "X-Title": settings.APP_NAME,
                },
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Send a non-streaming chat completion and return the decoded body."""
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        client = await self._get_client()
        try:
            response = await client.post("/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "OpenRouter returned %s: %s", e.response.status_code, e.response.text
            )
            raise OpenRouterError(
                f"OpenRouter API error: {e.response.text}", e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise OpenRouterError(f"Request failed: {e}") from e
        result: dict[str, Any] = response.json()
        return result
