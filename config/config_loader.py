"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.models import Dimension

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    fixer_system: str
    fixer: str
    reconcile_system: str
    reconcile: str
    score: str


@dataclass
class FixerProfile:
    """Per-dimension instructions that specialize the generic fixer."""

    dimension: Dimension
    label: str
    description: str
    focus: str


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 8.0


@dataclass
class DefaultsConfig:
    max_attempts: int
    output_dir: Path
    fixer_model: str
    reconciler_model: str
    fixer_timeout_sec: float = 90.0
    max_edits_per_fixer: int = 5
    scoring_panel: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    fixers: dict[Dimension, FixerProfile]
    retry: RetryConfig = field(default_factory=RetryConfig)
    available_providers: set[str] = field(default_factory=set)


def _load_fixer_profiles(raw: dict) -> dict[Dimension, FixerProfile]:
    """Build the dimension -> profile table. Every dimension must be configured."""
    missing = [d.value for d in Dimension if d.value not in raw]
    if missing:
        raise ValueError(f"settings.yaml is missing fixer profiles for: {', '.join(missing)}")

    unknown = sorted(set(raw) - {d.value for d in Dimension})
    if unknown:
        logger.warning("Ignoring fixer profiles for unknown dimensions: %s", ", ".join(unknown))

    return {
        dim: FixerProfile(
            dimension=dim,
            label=str(raw[dim.value].get("label", dim.value)),
            description=str(raw[dim.value]["description"]),
            focus=str(raw[dim.value]["focus"]).strip(),
        )
        for dim in Dimension
    }


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError if a
    dimension has no fixer profile.
    Logs missing API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_attempts=int(defaults_raw["max_attempts"]),
        output_dir=Path(defaults_raw["output_dir"]),
        fixer_model=str(defaults_raw["fixer_model"]),
        reconciler_model=str(defaults_raw["reconciler_model"]),
        fixer_timeout_sec=float(defaults_raw.get("fixer_timeout_sec", 90)),
        max_edits_per_fixer=int(defaults_raw.get("max_edits_per_fixer", 5)),
        scoring_panel=list(defaults_raw.get("scoring_panel", [])),
    )

    retry_raw = raw.get("retry", {})
    retry = RetryConfig(
        max_attempts=int(retry_raw.get("max_attempts", 3)),
        base_delay_sec=float(retry_raw.get("base_delay_sec", 1.0)),
        max_delay_sec=float(retry_raw.get("max_delay_sec", 8.0)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        fixer_system=prompts_raw["fixer_system"],
        fixer=prompts_raw["fixer"],
        reconcile_system=prompts_raw["reconcile_system"],
        reconcile=prompts_raw["reconcile"],
        score=prompts_raw["score"],
    )

    fixers = _load_fixer_profiles(raw.get("fixers", {}))

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        models[provider_name] = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        fixers=fixers,
        retry=retry,
        available_providers=available_providers,
    )
