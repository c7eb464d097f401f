"""Shared pytest fixtures and test doubles."""

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    FixerProfile,
    ModelConfig,
    PromptsConfig,
    RetryConfig,
)
from src.models import ConsensusResult, Dimension, EditPriority, Evidence, FixerResult, SuggestedEdit
from src.providers.base import AIProvider, ModelResponse
from src.retry import RetryPolicy

SAMPLE_DOCUMENT = (
    "## Introduction\n"
    "Remote work is obviously the best policy for every company.\n\n"
    "## Evidence\n"
    "Studies show productivity rose 40% across the board.\n\n"
    "## Conclusion\n"
    "Anyone who disagrees is ignoring the data."
)


def make_consensus(overall: float, default: float = 8.0, **scores: float) -> ConsensusResult:
    """ConsensusResult with every dimension at `default` unless overridden by value name."""
    dimension_scores = {dim: scores.get(dim.value, default) for dim in Dimension}
    return ConsensusResult(
        overall_score=overall,
        dimension_scores=dimension_scores,
        overall_critique="Overall critique.",
        dimension_critiques={dim: f"Critique for {dim.value}." for dim in Dimension},
    )


def make_edit(
    original: str,
    suggested: str = "replacement",
    section: str = "Introduction",
    priority: EditPriority = EditPriority.MEDIUM,
) -> SuggestedEdit:
    return SuggestedEdit(
        section=section,
        original_text=original,
        suggested_text=suggested,
        rationale="Because.",
        priority=priority,
    )


def make_response(content: str, provider: str = "mock") -> ModelResponse:
    return ModelResponse(
        provider=provider,
        model="mock-model",
        round_number=1,
        content=content,
        latency_sec=0.1,
        token_count=10,
    )


def fixer_payload(edits: Sequence[dict], confidence: float = 0.8) -> str:
    return json.dumps({"suggestedEdits": list(edits), "confidence": confidence})


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "{}") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=make_response(response_content, provider_name)
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(  # type: ignore[override]
        self,
        prompt: str,
        round_number: int,
        *,
        system: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        """Default implementation; replaced by AsyncMock in __init__."""
        return make_response(self._response_content, self._name)


class FakeFixer:
    """EditProposer double returning a canned result (or raising)."""

    def __init__(
        self,
        dimension: Dimension,
        edits: Sequence[SuggestedEdit] = (),
        confidence: float = 0.8,
        error: Exception | None = None,
        delay_sec: float = 0.0,
    ) -> None:
        self.dimension = dimension
        self._edits = list(edits)
        self._confidence = confidence
        self._error = error
        self._delay_sec = delay_sec
        self.calls: list[tuple[str, float, str]] = []

    async def suggest_edits(
        self,
        document: str,
        dimension_score: float,
        critique: str,
        evidence: Sequence[Evidence] | None = None,
        round_number: int = 1,
    ) -> FixerResult:
        self.calls.append((document, dimension_score, critique))
        if self._delay_sec:
            await asyncio.sleep(self._delay_sec)
        if self._error is not None:
            raise self._error
        return FixerResult(
            fixer_type=self.dimension,
            suggested_edits=list(self._edits),
            confidence=self._confidence,
            processing_time_ms=1.0,
        )


@pytest.fixture
def sample_document() -> str:
    return SAMPLE_DOCUMENT


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_sec=0.0, max_delay_sec=0.0)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        fixer_system="Editor for {description} ({dimension}). Max {max_edits} edits. Reply {{json}}.",
        fixer="Dimension: {dimension_label} at {score}/10\n{critique_block}\n{document}\n{evidence_block}\n{focus}",
        reconcile_system="Apply edits. JSON only.",
        reconcile="Document:\n{document}\n\nEdits:\n{edits}",
        score="Score these:\n{dimensions}\n\n{document}",
    )


@pytest.fixture
def sample_profiles() -> dict[Dimension, FixerProfile]:
    return {
        dim: FixerProfile(
            dimension=dim,
            label=dim.value.lower(),
            description=f"improving {dim.value}",
            focus=f"Look for {dim.value} problems.",
        )
        for dim in Dimension
    }


@pytest.fixture
def sample_app_config(
    tmp_path: Path,
    sample_prompts_config: PromptsConfig,
    sample_profiles: dict[Dimension, FixerProfile],
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=DefaultsConfig(
            max_attempts=3,
            output_dir=tmp_path / "output",
            fixer_model="claude",
            reconciler_model="claude",
            scoring_panel=["claude"],
        ),
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        fixers=sample_profiles,
        retry=RetryConfig(max_attempts=1, base_delay_sec=0.0, max_delay_sec=0.0),
        available_providers={"claude"},
    )
