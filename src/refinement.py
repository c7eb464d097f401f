"""Refinement loop: score -> fix -> reconcile -> re-score until passing or out of attempts."""

import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from src.models import (
    ConsensusResult,
    Dimension,
    Evidence,
    RefinementAttempt,
    RefinementRunResult,
)
from src.observer import NULL_OBSERVER, RefinementObserver
from src.orchestrator import DEPLOY_THRESHOLD, FixerOrchestrator
from src.reconciler import EditReconciler

logger = logging.getLogger(__name__)

# Overall score a document needs to stop refining. Distinct from the
# per-dimension DEPLOY_THRESHOLD used to pick fixers.
PASS_THRESHOLD = 8.0
DEFAULT_MAX_ATTEMPTS = 3

ScoringFn = Callable[[str], Awaitable[ConsensusResult]]


def _dimension_changes(
    before: ConsensusResult,
    after: ConsensusResult,
) -> dict[Dimension, tuple[float, float]]:
    return {dim: (before.dimension_scores[dim], after.dimension_scores[dim]) for dim in Dimension}


def build_warning_reason(final: ConsensusResult, attempts: Sequence[RefinementAttempt]) -> str:
    """Explain why a run stopped short, naming up to three weakest dimensions."""
    message = f"Document scored {final.overall_score:.1f}/10 after {len(attempts)} refinement attempts."
    weakest = sorted(
        (d for d in Dimension if final.dimension_scores[d] < DEPLOY_THRESHOLD),
        key=lambda d: final.dimension_scores[d],
    )[:3]
    if weakest:
        message += f" Lowest dimensions: {', '.join(d.value for d in weakest)}."
    return message


async def refine_until_passing(
    document: str,
    initial_consensus: ConsensusResult,
    scoring_fn: ScoringFn,
    orchestrator: FixerOrchestrator,
    reconciler: EditReconciler,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    evidence: Sequence[Evidence] | None = None,
    observer: RefinementObserver | None = None,
) -> RefinementRunResult:
    """Refine a document until it scores >= PASS_THRESHOLD or attempts run out.

    Args:
        document: The document as scored by ``initial_consensus``.
        initial_consensus: Round-0 score, computed by the caller.
        scoring_fn: Async scorer called once after every attempt.
        orchestrator: Deploys fixers for weak dimensions.
        reconciler: Merges fixer edits into a revision.
        max_attempts: Attempt budget, at least 1.
        evidence: Optional supporting material passed to every fixer.
        observer: Progress hooks.

    Returns:
        RefinementRunResult. Exhausting the budget is not an error: the result
        has success=False, the last document and a warning reason.

    Raises:
        ValueError: max_attempts < 1.
        Exception: Whatever scoring_fn raises; a score is never guessed.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    observer = observer or NULL_OBSERVER
    run_start = time.monotonic()
    current_document = document
    current = initial_consensus
    attempts: list[RefinementAttempt] = []

    logger.info("Starting refinement. Initial score: %.1f/10", current.overall_score)

    if current.overall_score >= PASS_THRESHOLD:
        logger.info("Document already meets target score (>= %.1f). No refinement needed.", PASS_THRESHOLD)
        result = RefinementRunResult(
            final_document=current_document,
            final_score=current.overall_score,
            success=True,
            attempts=[],
            final_consensus=current,
            total_processing_time_ms=(time.monotonic() - run_start) * 1000,
        )
        observer.on_run_complete(result)
        return result

    for attempt_number in range(1, max_attempts + 1):
        attempt_start = time.monotonic()
        score_before = current.overall_score
        logger.info("Starting attempt %d/%d (score %.1f)", attempt_number, max_attempts, score_before)

        orchestration = await orchestrator.orchestrate(
            current_document, current, evidence, round_number=attempt_number
        )
        reconciliation = await reconciler.reconcile(
            current_document, orchestration.fixer_results, round_number=attempt_number
        )
        observer.on_reconciliation_complete(attempt_number, reconciliation)

        if reconciliation.failure:
            logger.warning(
                "Attempt %d: reconciliation failed (%s), keeping previous document",
                attempt_number, reconciliation.failure,
            )
        # An empty revision (soft failure) must never replace the document
        current_document = reconciliation.revised_document or current_document

        # Re-score even when nothing changed so a stalled run exhausts instead of spinning
        previous = current
        current = await scoring_fn(current_document)
        score_after = current.overall_score

        attempt = RefinementAttempt(
            attempt_number=attempt_number,
            score_before=score_before,
            score_after=score_after,
            fixers_deployed=orchestration.fixers_deployed,
            edits_applied=reconciliation.edits_applied,
            edits_skipped=reconciliation.edits_skipped,
            dimension_changes=_dimension_changes(previous, current),
            processing_time_ms=(time.monotonic() - attempt_start) * 1000,
        )
        attempts.append(attempt)
        observer.on_round_complete(attempt)

        logger.info(
            "Attempt %d: score %.1f -> %.1f (%+.1f), %d edits applied, %d skipped",
            attempt_number,
            score_before,
            score_after,
            score_after - score_before,
            len(attempt.edits_applied),
            len(attempt.edits_skipped),
        )

        if score_after >= PASS_THRESHOLD:
            logger.info("Target score (>= %.1f) reached after %d attempt(s)", PASS_THRESHOLD, attempt_number)
            result = RefinementRunResult(
                final_document=current_document,
                final_score=score_after,
                success=True,
                attempts=attempts,
                final_consensus=current,
                total_processing_time_ms=(time.monotonic() - run_start) * 1000,
            )
            observer.on_run_complete(result)
            return result

    warning = build_warning_reason(current, attempts)
    logger.warning("Max attempts (%d) exhausted. %s", max_attempts, warning)

    result = RefinementRunResult(
        final_document=current_document,
        final_score=current.overall_score,
        success=False,
        attempts=attempts,
        warning_reason=warning,
        final_consensus=current,
        total_processing_time_ms=(time.monotonic() - run_start) * 1000,
    )
    observer.on_run_complete(result)
    return result
