"""Anthropic Claude oracle using the anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from src.providers.base import AIProvider, ModelResponse, ProviderError

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Claude via the Messages API.

    The Messages API has no JSON response mode; structured output is requested
    through the prompt and validated by src.parsing.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(
        self,
        prompt: str,
        round_number: int,
        *,
        system: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        request: dict = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**request),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in response.content or [] if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.debug(
            "Anthropic %s attempt %d: %.2fs, %s tokens",
            self._config.model,
            round_number,
            latency,
            token_count,
        )

        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            round_number=round_number,
            content="\n".join(text_blocks),
            latency_sec=latency,
            token_count=token_count,
        )
