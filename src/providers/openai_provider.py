"""OpenAI oracle using the openai SDK. Also serves OpenAI-compatible
endpoints (DeepSeek, xAI) when base_url is configured."""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from src.providers.base import AIProvider, ModelResponse, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """Chat Completions API, native or OpenAI-compatible."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        if config.base_url:
            self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)
        else:
            self._client = AsyncOpenAI(api_key=api_key)

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
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        request: dict = {
            "model": self._config.model,
            "messages": messages,
            "max_tokens": self._config.max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**request),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count = response.usage.total_tokens if response.usage else None

        logger.debug(
            "OpenAI %s attempt %d: %.2fs, %s tokens",
            self._config.model,
            round_number,
            latency,
            token_count,
        )

        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            round_number=round_number,
            content=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )
