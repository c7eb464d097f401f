"""Edit reconciliation: resolve conflicting fixer edits and merge them into one revision.

The conflict pass is deterministic: sections in first-appearance order, edits
by descending priority score, ties in the order the orchestrator aggregated
them (dimension enumeration order). Only the final merge goes to the oracle.
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from src.fixers import parse_edit
from src.models import (
    Dimension,
    EditPriority,
    FixerResult,
    ReconciliationResult,
    SkippedEdit,
    SuggestedEdit,
)
from src.parsing import ResponseParseError, extract_json_object
from src.providers.base import AIProvider, ProviderError
from src.retry import RetryPolicy, call_with_backoff

logger = logging.getLogger(__name__)

PRIORITY_WEIGHTS: dict[EditPriority, int] = {
    EditPriority.CRITICAL: 4,
    EditPriority.HIGH: 3,
    EditPriority.MEDIUM: 2,
    EditPriority.LOW: 1,
}
AGREEMENT_BONUS = 0.5

NOT_FOUND_REASON = "Original text not found in document"
ORACLE_SKIP_REASON = "Could not be applied"


@dataclass(frozen=True)
class CandidateEdit:
    """A proposed edit tagged with the fixer that proposed it."""

    edit: SuggestedEdit
    fixer_type: Dimension


@dataclass(frozen=True)
class ScoredEdit:
    edit: SuggestedEdit
    fixer_type: Dimension
    score: float


def normalize_section(section: str) -> str:
    return section.strip().lower()


def group_edits_by_section(candidates: Sequence[CandidateEdit]) -> dict[str, list[CandidateEdit]]:
    """Group by normalized section name; dict keeps first-appearance order."""
    groups: dict[str, list[CandidateEdit]] = {}
    for candidate in candidates:
        groups.setdefault(normalize_section(candidate.edit.section), []).append(candidate)
    return groups


def edit_priority_score(edit: SuggestedEdit, agreement_count: int) -> float:
    """Priority weight plus a bonus per other fixer proposing the same original text."""
    return PRIORITY_WEIGHTS[edit.priority] + AGREEMENT_BONUS * agreement_count


def score_section(candidates: Sequence[CandidateEdit]) -> list[ScoredEdit]:
    """Score every edit in one section group, highest first (stable)."""
    scored = []
    for candidate in candidates:
        agreeing = {
            other.fixer_type
            for other in candidates
            if other.fixer_type != candidate.fixer_type
            and other.edit.original_text == candidate.edit.original_text
        }
        scored.append(
            ScoredEdit(
                edit=candidate.edit,
                fixer_type=candidate.fixer_type,
                score=edit_priority_score(candidate.edit, len(agreeing)),
            )
        )
    # sorted() is stable, so equal scores keep aggregation order
    return sorted(scored, key=lambda s: s.score, reverse=True)


def edits_conflict(a: SuggestedEdit, b: SuggestedEdit) -> bool:
    """Two edits conflict when one's target text contains the other's (case-insensitive).

    This is a conservative stand-in for "the targets overlap": a short
    common phrase inside a longer, unrelated target also counts as a conflict.
    """
    text_a = a.original_text.lower()
    text_b = b.original_text.lower()
    return text_a == text_b or text_a in text_b or text_b in text_a


def select_edits(
    groups: dict[str, list[CandidateEdit]],
) -> tuple[list[ScoredEdit], list[SkippedEdit]]:
    """Greedily accept the highest-scoring non-conflicting edits in each section."""
    selected: list[ScoredEdit] = []
    skipped: list[SkippedEdit] = []

    for section, candidates in groups.items():
        accepted: list[ScoredEdit] = []
        for scored in score_section(candidates):
            if any(edits_conflict(scored.edit, kept.edit) for kept in accepted):
                skipped.append(
                    SkippedEdit(
                        edit=scored.edit,
                        reason=f'Conflicts with higher-priority edit in section "{section}"',
                    )
                )
            else:
                accepted.append(scored)
        selected.extend(accepted)

    return selected, skipped


def format_edits_for_prompt(selected: Sequence[ScoredEdit]) -> str:
    blocks = []
    for i, scored in enumerate(selected, start=1):
        edit = scored.edit
        blocks.append(
            f"Edit {i} (from {scored.fixer_type.value}, priority: {edit.priority.value}):\n"
            f"  Section: {edit.section}\n"
            f'  Original: "{edit.original_text}"\n'
            f'  Suggested: "{edit.suggested_text}"\n'
            f"  Rationale: {edit.rationale}"
        )
    return "\n\n".join(blocks)


class EditReconciler:
    """Turns a round's FixerResults into one revised document.

    Args:
        provider: The rewrite oracle.
        prompts: Prompt templates (reconcile, reconcile_system).
        retry_policy: Backoff policy for transient oracle failures.
    """

    def __init__(
        self,
        provider: AIProvider,
        prompts: PromptsConfig,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._retry_policy = retry_policy or RetryPolicy()

    def build_prompt(self, document: str, selected: Sequence[ScoredEdit]) -> str:
        return self._prompts.reconcile.format(
            document=document,
            edits=format_edits_for_prompt(selected),
        )

    def _parse_response(
        self,
        content: str,
        selected: Sequence[ScoredEdit],
        already_skipped: list[SkippedEdit],
    ) -> ReconciliationResult:
        """Map the oracle's JSON answer onto a ReconciliationResult.

        Raises:
            ResponseParseError: No JSON object, no revised document in it, or
                an edit report that is not a list.
        """
        payload = extract_json_object(content)
        revised = payload.get("revisedDocument") or payload.get("revisedBrief") or ""
        if not isinstance(revised, str) or not revised.strip():
            raise ResponseParseError("Response has no revised document")

        raw_applied = payload.get("editsApplied") or []
        raw_not_applicable = payload.get("editsNotApplicable") or []
        if not isinstance(raw_applied, list) or not isinstance(raw_not_applicable, list):
            raise ResponseParseError("editsApplied and editsNotApplicable must be lists")

        applied = [e for e in (parse_edit(item) for item in raw_applied) if e is not None]

        not_applicable: list[SkippedEdit] = []
        for item in raw_not_applicable:
            if not isinstance(item, dict):
                continue
            section = normalize_section(str(item.get("section") or ""))
            original = str(item.get("originalText") or "")
            match = next(
                (
                    s.edit
                    for s in selected
                    if s.edit.original_text == original and normalize_section(s.edit.section) == section
                ),
                None,
            )
            if match is None:
                match = SuggestedEdit(
                    section=str(item.get("section") or ""),
                    original_text=original,
                    suggested_text="",
                    rationale="",
                )
            not_applicable.append(SkippedEdit(edit=match, reason=str(item.get("reason") or ORACLE_SKIP_REASON)))

        return ReconciliationResult(
            revised_document=revised,
            edits_applied=applied,
            edits_skipped=already_skipped + not_applicable,
        )

    @staticmethod
    def _soft_failure(
        selected: Sequence[ScoredEdit],
        already_skipped: list[SkippedEdit],
        detail: str,
    ) -> ReconciliationResult:
        """No edits applied; every requested edit is recorded as skipped."""
        reason = f"Rewrite failed: {detail}"
        return ReconciliationResult(
            revised_document="",
            edits_applied=[],
            edits_skipped=already_skipped + [SkippedEdit(edit=s.edit, reason=reason) for s in selected],
            failure=detail,
        )

    async def reconcile(
        self,
        original_document: str,
        fixer_results: Sequence[FixerResult],
        round_number: int = 1,
    ) -> ReconciliationResult:
        """Resolve conflicts between proposed edits and merge the survivors.

        Never raises for oracle problems: exhausted retries or an unparseable
        answer return a result with ``failure`` set and an empty
        ``revised_document``. With nothing to apply the original document is
        returned unchanged and the oracle is not called.
        """
        start = time.monotonic()

        candidates: list[CandidateEdit] = []
        skipped: list[SkippedEdit] = []
        for result in fixer_results:
            for edit in result.suggested_edits:
                if edit.original_text and edit.original_text in original_document:
                    candidates.append(CandidateEdit(edit=edit, fixer_type=result.fixer_type))
                else:
                    skipped.append(SkippedEdit(edit=edit, reason=NOT_FOUND_REASON))

        logger.info(
            "Reconciling %d edits from %d fixers (%d target text not found)",
            len(candidates) + len(skipped),
            len(fixer_results),
            len(skipped),
        )

        groups = group_edits_by_section(candidates)
        selected, conflicts = select_edits(groups)
        skipped.extend(conflicts)
        logger.info(
            "Selected %d edits across %d sections, %d skipped as conflicts",
            len(selected), len(groups), len(conflicts),
        )

        if not selected:
            logger.info("No edits to apply, document unchanged")
            return ReconciliationResult(revised_document=original_document, edits_applied=[], edits_skipped=skipped)

        try:
            response = await call_with_backoff(
                self._provider,
                self.build_prompt(original_document, selected),
                round_number=round_number,
                policy=self._retry_policy,
                system=self._prompts.reconcile_system,
                json_mode=True,
                label="reconciler",
            )
        except ProviderError as exc:
            logger.error("Rewrite oracle failed after retries: %s", exc)
            return self._soft_failure(selected, skipped, str(exc))

        try:
            result = self._parse_response(response.content, selected, skipped)
        except ResponseParseError as exc:
            logger.error("Unparseable rewrite response: %s", exc)
            return self._soft_failure(selected, skipped, f"unparseable response ({exc})")

        logger.info(
            "Reconciliation completed in %.0fms: %d applied, %d skipped",
            (time.monotonic() - start) * 1000,
            len(result.edits_applied),
            len(result.edits_skipped),
        )
        return result
