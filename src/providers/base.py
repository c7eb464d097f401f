"""Abstract base for the text-generation oracles the engine talks to."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass
class ModelResponse:
    provider: str
    model: str
    round_number: int      # refinement attempt the call belongs to (0 = initial scoring)
    content: str
    latency_sec: float
    token_count: int | None


class AIProvider(ABC):
    """A text-generation oracle: prompt in, text out."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name from settings.yaml (e.g. 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        round_number: int,
        *,
        system: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        """Generate a response for the given prompt.

        Args:
            prompt: The user prompt.
            round_number: Refinement attempt number, used for logging.
            system: Optional system instructions.
            json_mode: Ask the backend for a JSON object when it supports it.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
