"""Anthropic vision client adapter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from ..errors import ProviderError
from .base import ANALYSIS_PROMPT, Answer, BaseVisionClient
from .parsing import parse_answer


@dataclass(slots=True)
class AnthropicClientConfig:
    """Configuration for Anthropic API calls."""

    timeout_seconds: float = 30.0
    max_output_tokens: int = 1024
    temperature: float = 0.4


class AnthropicVisionClient(BaseVisionClient):
    """Async wrapper around official anthropic SDK."""

    def __init__(
        self,
        model_alias: str,
        api_model: str,
        api_key: str | None = None,
        *,
        dry_run: bool = False,
        config: AnthropicClientConfig | None = None,
    ) -> None:
        super().__init__(model_alias=model_alias, api_model=api_model, dry_run=dry_run)
        self.api_key = api_key
        self.config = config or AnthropicClientConfig()

        self._client: Any | None = None
        if not self.dry_run:
            if not self.api_key:
                raise ValueError(f"Missing API key for model '{model_alias}'")
            try:
                from anthropic import AsyncAnthropic
            except ImportError as exc:
                raise RuntimeError("anthropic package is not installed") from exc
            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.config.timeout_seconds)

    async def infer(self, image: str, *, prompt: str = ANALYSIS_PROMPT) -> Answer:
        if self.dry_run:
            return self._mock_answer(image)
        if self._client is None:
            raise RuntimeError("Anthropic client not initialized")

        if image.startswith("data:"):
            image = image.split(",", 1)[-1]

        try:
            response = await self._client.messages.create(
                model=self.api_model,
                max_tokens=self.config.max_output_tokens,
                temperature=self.config.temperature,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {"type": "base64", "media_type": "image/jpeg", "data": image},
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
        except Exception as exc:
            raise ProviderError(f"{self.model_alias} request failed: {exc}") from exc

        text_chunks = []
        for chunk in response.content:
            if getattr(chunk, "type", None) == "text":
                text_chunks.append(chunk.text)
        return parse_answer("\n".join(text_chunks))

    async def close(self) -> None:
        # Official SDK currently does not require explicit closure.
        await asyncio.sleep(0)
