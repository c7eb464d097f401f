"""Integration tests: real API calls, no mocks. Requires .env with at least one API key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

from tests.conftest import SAMPLE_DOCUMENT

load_dotenv()

_AVAILABLE_KEYS = [
    k for k in ["ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "DEEPSEEK_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if not _AVAILABLE_KEYS:
    pytestmark = pytest.mark.skip(reason="Need at least one API key")


async def test_full_refinement_pipeline(tmp_path: Path):
    """Score, run one refinement attempt and gate a real document; verify no crash."""
    from config.config_loader import load_config
    from src.cli import _build_all_providers, _pick_provider, _pick_scoring_panel
    from src.fixers import build_fixers
    from src.orchestrator import FixerOrchestrator
    from src.output import save_to_file
    from src.quality_gate import gate_refinement_result
    from src.reconciler import EditReconciler
    from src.refinement import refine_until_passing
    from src.scoring import ConsensusScorer

    config = load_config()
    all_providers = _build_all_providers(config)
    assert all_providers, "No providers could be built"

    provider = _pick_provider(all_providers, config.defaults.fixer_model, "Fixer")
    panel = _pick_scoring_panel(all_providers, config.defaults.scoring_panel, provider)
    scorer = ConsensusScorer(panel, config.prompts, config.fixers)

    initial = await scorer.score(SAMPLE_DOCUMENT)
    assert 0.0 <= initial.overall_score <= 10.0

    result = await refine_until_passing(
        document=SAMPLE_DOCUMENT,
        initial_consensus=initial,
        scoring_fn=scorer,
        orchestrator=FixerOrchestrator(build_fixers(config.fixers, provider, config.prompts)),
        reconciler=EditReconciler(provider, config.prompts),
        max_attempts=1,
    )

    assert result.final_document.strip()
    assert len(result.attempts) <= 1
    decision = gate_refinement_result(result)

    saved = save_to_file(result, decision, tmp_path / "output", source="integration_test")
    content = saved.read_text(encoding="utf-8")
    assert "# Refinement Report" in content
    assert "## Final Document" in content
