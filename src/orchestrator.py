"""Fixer orchestration: pick weak dimensions, fan out fixers, collect edits."""

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence

from src.fixers import EditProposer
from src.models import (
    ConsensusResult,
    Dimension,
    DimensionScores,
    Evidence,
    FixerResult,
    OrchestrationResult,
)
from src.observer import NULL_OBSERVER, RefinementObserver

logger = logging.getLogger(__name__)

# A fixer is deployed for every dimension scoring strictly below this
DEPLOY_THRESHOLD = 7.0
DEFAULT_FIXER_TIMEOUT_SEC = 90.0


def select_dimensions(dimension_scores: DimensionScores) -> list[Dimension]:
    """Dimensions below DEPLOY_THRESHOLD, in enumeration order."""
    return [dim for dim in Dimension if dimension_scores[dim] < DEPLOY_THRESHOLD]


class FixerOrchestrator:
    """Deploys one fixer per weak dimension, concurrently.

    Args:
        fixers: Dimension -> fixer lookup table (see src.fixers.build_fixers).
        timeout_sec: Per-fixer budget; a fixer over budget counts as zero edits.
        observer: Progress hooks.
    """

    def __init__(
        self,
        fixers: Mapping[Dimension, EditProposer],
        timeout_sec: float = DEFAULT_FIXER_TIMEOUT_SEC,
        observer: RefinementObserver | None = None,
    ) -> None:
        self._fixers = fixers
        self._timeout_sec = timeout_sec
        self._observer = observer or NULL_OBSERVER

    async def _run_fixer(
        self,
        dimension: Dimension,
        document: str,
        consensus: ConsensusResult,
        evidence: Sequence[Evidence] | None,
        round_number: int,
    ) -> FixerResult:
        """Run one fixer. Never raises; failures become an empty FixerResult."""
        start = time.monotonic()
        fixer = self._fixers.get(dimension)
        try:
            if fixer is None:
                raise LookupError(f"No fixer registered for {dimension.value}")
            result = await asyncio.wait_for(
                fixer.suggest_edits(
                    document,
                    consensus.dimension_scores[dimension],
                    consensus.critique_for(dimension),
                    evidence,
                    round_number=round_number,
                ),
                timeout=self._timeout_sec,
            )
        except TimeoutError:
            logger.warning("Fixer %s timed out after %.0fs", dimension.value, self._timeout_sec)
            result = FixerResult(
                fixer_type=dimension,
                processing_time_ms=(time.monotonic() - start) * 1000,
                error=f"Timed out after {self._timeout_sec:.0f}s",
            )
        except Exception as exc:
            logger.warning("Fixer %s failed: %s", dimension.value, exc)
            result = FixerResult(
                fixer_type=dimension,
                processing_time_ms=(time.monotonic() - start) * 1000,
                error=str(exc) or type(exc).__name__,
            )

        self._observer.on_fixer_complete(result)
        return result

    async def orchestrate(
        self,
        document: str,
        consensus: ConsensusResult,
        evidence: Sequence[Evidence] | None = None,
        round_number: int = 1,
    ) -> OrchestrationResult:
        """Deploy fixers for every dimension below threshold and aggregate their edits.

        Edits are aggregated in dimension enumeration order, independent of
        which fixer finished first.
        """
        start = time.monotonic()
        selected = select_dimensions(consensus.dimension_scores)

        logger.debug(
            "Dimension scores (overall %.1f): %s",
            consensus.overall_score,
            ", ".join(f"{d.value}={consensus.dimension_scores[d]:.1f}" for d in Dimension),
        )

        if not selected:
            logger.info("No fixers needed, all dimensions scoring >= %.1f", DEPLOY_THRESHOLD)
            return OrchestrationResult(
                fixers_deployed=[],
                fixer_results=[],
                all_suggested_edits=[],
                total_processing_time_ms=(time.monotonic() - start) * 1000,
            )

        logger.info(
            "Deploying %d fixers for dimensions scoring < %.1f: %s",
            len(selected),
            DEPLOY_THRESHOLD,
            ", ".join(d.value for d in selected),
        )
        self._observer.on_fixers_selected(list(selected))

        # gather preserves input order, so results line up with `selected`
        results: list[FixerResult] = list(
            await asyncio.gather(
                *(self._run_fixer(d, document, consensus, evidence, round_number) for d in selected)
            )
        )

        all_edits = [edit for result in results for edit in result.suggested_edits]
        total_ms = (time.monotonic() - start) * 1000

        for result in results:
            logger.info(
                "%s: %d edits, confidence %.2f, %.0fms%s",
                result.fixer_type.value,
                len(result.suggested_edits),
                result.confidence,
                result.processing_time_ms,
                f" (failed: {result.error})" if result.failed else "",
            )

        failed = sum(1 for r in results if r.failed)
        if failed == len(results):
            logger.warning("All %d fixers failed this round", failed)

        return OrchestrationResult(
            fixers_deployed=list(selected),
            fixer_results=results,
            all_suggested_edits=all_edits,
            total_processing_time_ms=total_ms,
        )
