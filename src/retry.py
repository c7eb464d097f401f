"""Bounded exponential backoff around oracle calls."""

import asyncio
import logging
from dataclasses import dataclass

from src.providers.base import AIProvider, ModelResponse, ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-indexed): base, 2x base, 4x base... capped."""
        return min(self.base_delay_sec * (2 ** (attempt - 1)), self.max_delay_sec)


async def call_with_backoff(
    provider: AIProvider,
    prompt: str,
    *,
    round_number: int,
    policy: RetryPolicy,
    system: str | None = None,
    json_mode: bool = False,
    label: str = "oracle",
) -> ModelResponse:
    """Call provider.generate, retrying failures with exponential backoff.

    Unexpected exceptions are wrapped in ProviderError so callers only ever
    see one error type.

    Raises:
        ProviderError: The last failure once policy.max_attempts is reached.
    """
    attempts = max(1, policy.max_attempts)
    last_error: ProviderError | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await provider.generate(prompt, round_number, system=system, json_mode=json_mode)
        except ProviderError as exc:
            last_error = exc
        except Exception as exc:
            last_error = ProviderError(provider.name(), f"Unexpected error: {exc}")

        logger.warning(
            "[%s] Attempt %d/%d via %s failed: %s",
            label, attempt, attempts, provider.name(), last_error,
        )
        if attempt < attempts:
            await asyncio.sleep(policy.delay_for(attempt))

    assert last_error is not None
    raise last_error
