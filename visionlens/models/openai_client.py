"""OpenAI-compatible vision client adapter.

Covers OpenAI itself and providers exposing the Chat Completions API
(Gemini's OpenAI endpoint, Volcengine Ark / Doubao) via ``base_url``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from ..errors import ProviderError
from .base import ANALYSIS_PROMPT, Answer, BaseVisionClient, image_data_uri
from .parsing import parse_answer


@dataclass(slots=True)
class OpenAIClientConfig:
    """Configuration for OpenAI-compatible API calls."""

    timeout_seconds: float = 30.0
    max_output_tokens: int = 1024
    temperature: float = 0.4


class OpenAIVisionClient(BaseVisionClient):
    """Async wrapper around the OpenAI Python SDK for image questions."""

    def __init__(
        self,
        model_alias: str,
        api_model: str,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        extra_headers: dict[str, str] | None = None,
        dry_run: bool = False,
        config: OpenAIClientConfig | None = None,
    ) -> None:
        super().__init__(model_alias=model_alias, api_model=api_model, dry_run=dry_run)
        self.api_key = api_key
        self.base_url = base_url
        self.extra_headers = extra_headers or {}
        self.config = config or OpenAIClientConfig()

        self._client: Any | None = None
        if not self.dry_run:
            if not self.api_key:
                raise ValueError(f"Missing API key for model '{model_alias}'")
            self._init_client()

    def _init_client(self) -> None:
        try:
            from openai import AsyncOpenAI
        except ImportError as exc:
            raise RuntimeError("openai package is not installed") from exc

        kwargs: dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": self.config.timeout_seconds,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self.extra_headers:
            kwargs["default_headers"] = self.extra_headers
        self._client = AsyncOpenAI(**kwargs)

    async def infer(self, image: str, *, prompt: str = ANALYSIS_PROMPT) -> Answer:
        if self.dry_run:
            return self._mock_answer(image)
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        try:
            response = await self._client.chat.completions.create(
                model=self.api_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image_data_uri(image)}},
                        ],
                    }
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_output_tokens,
            )
        except Exception as exc:
            raise ProviderError(f"{self.model_alias} request failed: {exc}") from exc

        text = response.choices[0].message.content or "" if response.choices else ""
        return parse_answer(text)

    async def close(self) -> None:
        if self._client is None:
            await asyncio.sleep(0)
            return
        close_fn = getattr(self._client, "close", None)
        if close_fn is not None:
            maybe_coro = close_fn()
            if asyncio.iscoroutine(maybe_coro):
                await maybe_coro
            return
        await asyncio.sleep(0)
