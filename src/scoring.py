"""Consensus scoring: an evaluator panel scores all dimensions in parallel, results averaged."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from config.config_loader import FixerProfile, PromptsConfig
from src.models import MAX_SCORE, MIN_SCORE, ConsensusResult, Dimension, weighted_overall
from src.parsing import ResponseParseError, extract_json_object
from src.providers.base import AIProvider, ProviderError
from src.retry import RetryPolicy, call_with_backoff

logger = logging.getLogger(__name__)

# Evaluators disagree on a dimension when their scores spread wider than this
DISAGREEMENT_THRESHOLD = 2.0


class ScoringError(Exception):
    """Raised when no evaluator produced a usable verdict."""


@dataclass
class EvaluatorVerdict:
    evaluator: str
    dimension_scores: dict[Dimension, float]
    dimension_critiques: dict[Dimension, str]
    critique: str


def _clamp(score: float) -> float:
    return min(MAX_SCORE, max(MIN_SCORE, score))


def parse_verdict(evaluator: str, content: str) -> EvaluatorVerdict:
    """Parse one evaluator's JSON answer.

    Raises:
        ResponseParseError: Unparseable, or a dimension score is missing/non-numeric.
    """
    payload = extract_json_object(content)
    raw_scores = payload.get("dimensionScores")
    if not isinstance(raw_scores, dict):
        raise ResponseParseError("dimensionScores missing")

    scores: dict[Dimension, float] = {}
    for dim in Dimension:
        try:
            scores[dim] = _clamp(float(raw_scores[dim.value]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ResponseParseError(f"No usable score for {dim.value}") from exc

    raw_critiques = payload.get("dimensionCritiques")
    if not isinstance(raw_critiques, dict):
        raw_critiques = {}
    critiques = {dim: str(raw_critiques.get(dim.value, "")).strip() for dim in Dimension}
    return EvaluatorVerdict(
        evaluator=evaluator,
        dimension_scores=scores,
        dimension_critiques=critiques,
        critique=str(payload.get("critique") or "").strip(),
    )


def find_disagreements(verdicts: Sequence[EvaluatorVerdict]) -> dict[Dimension, float]:
    """Dimensions whose max-min score spread across evaluators exceeds DISAGREEMENT_THRESHOLD."""
    if len(verdicts) < 2:
        return {}
    spreads = {}
    for dim in Dimension:
        scores = [v.dimension_scores[dim] for v in verdicts]
        spread = max(scores) - min(scores)
        if spread > DISAGREEMENT_THRESHOLD:
            spreads[dim] = round(spread, 2)
    return spreads


def merge_verdicts(verdicts: Sequence[EvaluatorVerdict]) -> ConsensusResult:
    """Average verdicts per dimension; overall score is the weighted mean of the dimensions."""
    if not verdicts:
        raise ScoringError("No evaluator verdicts to merge")

    dimension_scores = {
        dim: round(sum(v.dimension_scores[dim] for v in verdicts) / len(verdicts), 2)
        for dim in Dimension
    }
    overall = weighted_overall(dimension_scores)

    disagreements = find_disagreements(verdicts)
    if disagreements:
        logger.warning(
            "Evaluators disagree on %s",
            ", ".join(f"{d.value} (spread {s:.1f})" for d, s in disagreements.items()),
        )

    multi = len(verdicts) > 1
    dimension_critiques = {}
    for dim in Dimension:
        parts = [
            f"{v.evaluator}: {v.dimension_critiques[dim]}" if multi else v.dimension_critiques[dim]
            for v in verdicts
            if v.dimension_critiques.get(dim)
        ]
        dimension_critiques[dim] = " ".join(parts)

    overall_critique = "; ".join(f"{v.evaluator}: {v.critique}" for v in verdicts if v.critique)

    return ConsensusResult(
        overall_score=overall,
        dimension_scores=dimension_scores,
        overall_critique=overall_critique,
        dimension_critiques=dimension_critiques,
        disagreements=disagreements,
    )


class ConsensusScorer:
    """Scores documents with a panel of evaluator oracles.

    Instances are callable, so a scorer can be passed straight to
    refine_until_passing as its scoring function.
    """

    def __init__(
        self,
        evaluators: Sequence[AIProvider],
        prompts: PromptsConfig,
        profiles: dict[Dimension, FixerProfile],
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if not evaluators:
            raise ValueError("ConsensusScorer needs at least one evaluator")
        self._evaluators = list(evaluators)
        self._prompts = prompts
        self._profiles = profiles
        self._retry_policy = retry_policy or RetryPolicy()

    def build_prompt(self, document: str) -> str:
        dimensions = "\n".join(
            f"- {dim.value}: {self._profiles[dim].label}" for dim in Dimension
        )
        return self._prompts.score.format(dimensions=dimensions, document=document)

    async def _evaluate(self, evaluator: AIProvider, prompt: str, round_number: int) -> EvaluatorVerdict | Exception:
        """One evaluator's verdict. Never raises; returns the error instead."""
        try:
            response = await call_with_backoff(
                evaluator,
                prompt,
                round_number=round_number,
                policy=self._retry_policy,
                json_mode=True,
                label=f"scorer:{evaluator.name()}",
            )
            return parse_verdict(evaluator.name(), response.content)
        except (ProviderError, ResponseParseError) as exc:
            logger.warning("Evaluator %s failed: %s", evaluator.name(), exc)
            return exc

    async def score(self, document: str, round_number: int = 0) -> ConsensusResult:
        """Score a document. round_number only labels log lines.

        Raises:
            ScoringError: Every evaluator failed.
        """
        prompt = self.build_prompt(document)

        outcomes = await asyncio.gather(
            *(self._evaluate(e, prompt, round_number) for e in self._evaluators)
        )
        verdicts = [o for o in outcomes if isinstance(o, EvaluatorVerdict)]

        if not verdicts:
            raise ScoringError(f"All {len(self._evaluators)} evaluators failed")
        if len(verdicts) < len(self._evaluators):
            logger.warning("Only %d/%d evaluators responded", len(verdicts), len(self._evaluators))

        result = merge_verdicts(verdicts)
        logger.info("Consensus score: %.1f/10 from %d evaluators", result.overall_score, len(verdicts))
        return result

    async def __call__(self, document: str) -> ConsensusResult:
        return await self.score(document)
