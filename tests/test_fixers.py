"""Tests for src/fixers.py."""

import json
from unittest.mock import AsyncMock

import pytest

from src.fixers import Fixer, build_fixers, format_evidence, parse_edit
from src.models import Dimension, EditPriority, Evidence
from src.providers.base import ProviderError
from tests.conftest import MockProvider, fixer_payload

_EDIT = {
    "section": "Introduction",
    "originalText": "obviously the best policy",
    "suggestedText": "one policy option",
    "rationale": "Removes loaded language.",
    "priority": "high",
}


@pytest.fixture
def bias_fixer(sample_profiles, sample_prompts_config, fast_retry):
    def _make(content: str) -> tuple[Fixer, MockProvider]:
        provider = MockProvider("fixer", content)
        fixer = Fixer(
            sample_profiles[Dimension.BIAS_DETECTION],
            provider,
            sample_prompts_config,
            retry_policy=fast_retry,
            max_edits=2,
        )
        return fixer, provider

    return _make


def test_parse_edit_requires_all_fields():
    assert parse_edit({**_EDIT, "rationale": ""}) is None
    assert parse_edit("not a dict") is None


def test_parse_edit_normalizes_priority():
    edit = parse_edit({**_EDIT, "priority": "whenever"})
    assert edit is not None
    assert edit.priority is EditPriority.MEDIUM
    assert edit.original_text == "obviously the best policy"


def test_format_evidence_empty():
    assert format_evidence(None) == ""
    assert format_evidence([]) == ""


def test_format_evidence_includes_title_and_url():
    block = format_evidence([Evidence(title="Survey", content="40% of firms...", url="https://example.org")])
    assert "Supporting Evidence" in block
    assert "[1] Survey (https://example.org)" in block
    assert "40% of firms" in block


async def test_suggest_edits_returns_parsed_edits(bias_fixer, sample_document):
    fixer, _ = bias_fixer(fixer_payload([_EDIT], confidence=0.9))
    result = await fixer.suggest_edits(sample_document, 4.0, "Loaded language.")

    assert result.fixer_type is Dimension.BIAS_DETECTION
    assert len(result.suggested_edits) == 1
    assert result.suggested_edits[0].priority is EditPriority.HIGH
    assert result.confidence == 0.9
    assert result.error is None


async def test_prompt_carries_score_critique_document_and_focus(bias_fixer, sample_document):
    fixer, provider = bias_fixer(fixer_payload([]))
    await fixer.suggest_edits(
        sample_document, 3.0, "Too one-sided.", [Evidence(title="Poll", content="Poll data")]
    )

    prompt = provider.generate.call_args.args[0]
    kwargs = provider.generate.call_args.kwargs
    assert "3.0/10" in prompt
    assert 'Evaluator critique: "Too one-sided."' in prompt
    assert sample_document in prompt
    assert "Look for biasDetection problems." in prompt
    assert "Poll data" in prompt
    assert "improving biasDetection" in kwargs["system"]
    assert "{json}" in kwargs["system"]
    assert kwargs["json_mode"] is True


async def test_empty_critique_is_omitted(bias_fixer, sample_document):
    fixer, provider = bias_fixer(fixer_payload([]))
    await fixer.suggest_edits(sample_document, 3.0, "   ")
    assert "Evaluator critique" not in provider.generate.call_args.args[0]


async def test_edits_capped_at_max_edits(bias_fixer, sample_document):
    edits = [{**_EDIT, "originalText": f"text {i}"} for i in range(4)]
    fixer, _ = bias_fixer(fixer_payload(edits))
    result = await fixer.suggest_edits(sample_document, 4.0, "")
    assert len(result.suggested_edits) == 2


async def test_confidence_is_clamped(bias_fixer, sample_document):
    fixer, _ = bias_fixer(fixer_payload([_EDIT], confidence=7))
    result = await fixer.suggest_edits(sample_document, 4.0, "")
    assert result.confidence == 1.0


async def test_missing_confidence_defaults_by_edit_presence(bias_fixer, sample_document):
    with_edits, _ = bias_fixer(json.dumps({"suggestedEdits": [_EDIT]}))
    result = await with_edits.suggest_edits(sample_document, 4.0, "")
    assert result.confidence == 0.5

    without_edits, _ = bias_fixer(json.dumps({"suggestedEdits": []}))
    result = await without_edits.suggest_edits(sample_document, 4.0, "")
    assert result.suggested_edits == []
    assert result.confidence == 0.0


async def test_unparseable_response_is_empty_result_not_exception(bias_fixer, sample_document):
    fixer, _ = bias_fixer("I could not find any issues, sorry!")
    result = await fixer.suggest_edits(sample_document, 4.0, "")
    assert result.suggested_edits == []
    assert result.confidence == 0.0
    assert result.failed
    assert "Unparseable" in result.error


async def test_provider_failure_propagates_after_retries(bias_fixer, sample_document):
    fixer, provider = bias_fixer("{}")
    provider.generate = AsyncMock(side_effect=ProviderError("fixer", "503"))
    with pytest.raises(ProviderError):
        await fixer.suggest_edits(sample_document, 4.0, "")
    assert provider.generate.await_count == 3


async def test_document_is_not_mutated(bias_fixer, sample_document):
    original = str(sample_document)
    fixer, _ = bias_fixer(fixer_payload([_EDIT]))
    await fixer.suggest_edits(sample_document, 4.0, "")
    assert sample_document == original


def test_build_fixers_covers_every_dimension(sample_profiles, sample_prompts_config):
    fixers = build_fixers(sample_profiles, MockProvider(), sample_prompts_config)
    assert list(fixers) == list(Dimension)
    assert all(f.dimension is d for d, f in fixers.items())


def test_build_fixers_rejects_missing_profile(sample_profiles, sample_prompts_config):
    del sample_profiles[Dimension.ACCESSIBILITY]
    with pytest.raises(ValueError, match="accessibility"):
        build_fixers(sample_profiles, MockProvider(), sample_prompts_config)
