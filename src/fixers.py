"""Dimension fixers: propose targeted edits for one weak quality dimension.

There is a single Fixer implementation. What makes the evidence fixer differ
from the bias fixer is its FixerProfile (description + focus instructions
from settings.yaml), so adding a dimension means adding a profile, not a class.
"""

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Protocol

from config.config_loader import FixerProfile, PromptsConfig
from src.models import Dimension, EditPriority, Evidence, FixerResult, SuggestedEdit
from src.parsing import ResponseParseError, extract_json_object
from src.providers.base import AIProvider
from src.retry import RetryPolicy, call_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_MAX_EDITS = 5
# Used when the oracle returns edits but no usable confidence value
_DEFAULT_CONFIDENCE = 0.5
_EVIDENCE_EXCERPT_CHARS = 2000


class EditProposer(Protocol):
    """Anything the orchestrator can deploy for a dimension."""

    dimension: Dimension

    async def suggest_edits(
        self,
        document: str,
        dimension_score: float,
        critique: str,
        evidence: Sequence[Evidence] | None = None,
        round_number: int = 1,
    ) -> FixerResult:
        ...


def format_evidence(evidence: Sequence[Evidence] | None) -> str:
    """Render supporting evidence as a prompt block, or "" when there is none."""
    if not evidence:
        return ""
    parts = ["## Supporting Evidence:"]
    for i, item in enumerate(evidence, start=1):
        header = f"[{i}] {item.title}"
        if item.url:
            header += f" ({item.url})"
        excerpt = item.content[:_EVIDENCE_EXCERPT_CHARS]
        if len(item.content) > _EVIDENCE_EXCERPT_CHARS:
            excerpt += "..."
        parts.append(f"{header}\n{excerpt}")
    return "\n\n".join(parts)


def parse_edit(raw: object) -> SuggestedEdit | None:
    """Build a SuggestedEdit from one oracle item; None if a required field is missing."""
    if not isinstance(raw, dict):
        return None
    fields = ("section", "originalText", "suggestedText", "rationale")
    if not all(raw.get(f) for f in fields):
        return None
    return SuggestedEdit(
        section=str(raw["section"]),
        original_text=str(raw["originalText"]),
        suggested_text=str(raw["suggestedText"]),
        rationale=str(raw["rationale"]),
        priority=EditPriority.parse(raw.get("priority")),
    )


def _clamp_confidence(value: object, default: float) -> float:
    try:
        confidence = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if confidence != confidence:  # NaN
        return default
    return min(1.0, max(0.0, confidence))


class Fixer:
    """Generic fixer specialized by a FixerProfile."""

    def __init__(
        self,
        profile: FixerProfile,
        provider: AIProvider,
        prompts: PromptsConfig,
        retry_policy: RetryPolicy | None = None,
        max_edits: int = DEFAULT_MAX_EDITS,
    ) -> None:
        self.profile = profile
        self.dimension = profile.dimension
        self._provider = provider
        self._prompts = prompts
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_edits = max_edits

    def build_system_prompt(self) -> str:
        return self._prompts.fixer_system.format(
            description=self.profile.description,
            dimension=self.dimension.value,
            max_edits=self._max_edits,
        )

    def build_prompt(
        self,
        document: str,
        dimension_score: float,
        critique: str,
        evidence: Sequence[Evidence] | None = None,
    ) -> str:
        critique_block = f'Evaluator critique: "{critique}"' if critique.strip() else ""
        return self._prompts.fixer.format(
            dimension_label=self.profile.label,
            score=f"{dimension_score:.1f}",
            critique_block=critique_block,
            document=document,
            evidence_block=format_evidence(evidence),
            focus=self.profile.focus,
        )

    def parse_response(self, content: str) -> tuple[list[SuggestedEdit], float]:
        """Parse the oracle's JSON answer into (edits, confidence).

        Raises:
            ResponseParseError: The response holds no usable JSON object.
        """
        payload = extract_json_object(content)
        raw_edits = payload.get("suggestedEdits") or []
        if not isinstance(raw_edits, list):
            raise ResponseParseError("suggestedEdits is not a list")

        edits = [e for e in (parse_edit(item) for item in raw_edits) if e is not None]
        dropped = len(raw_edits) - len(edits)
        if dropped:
            logger.debug("[%s] Dropped %d incomplete edits", self.dimension.value, dropped)

        default = _DEFAULT_CONFIDENCE if edits else 0.0
        return edits[: self._max_edits], _clamp_confidence(payload.get("confidence"), default)

    async def suggest_edits(
        self,
        document: str,
        dimension_score: float,
        critique: str,
        evidence: Sequence[Evidence] | None = None,
        round_number: int = 1,
    ) -> FixerResult:
        """Analyze the document for this fixer's dimension and propose edits.

        An unparseable oracle answer yields an empty, zero-confidence result
        with ``error`` set. Provider failures that survive the retry policy
        raise ProviderError; the orchestrator isolates them.
        """
        start = time.monotonic()
        logger.info("[%s] Starting analysis (dimension score: %.1f)", self.dimension.value, dimension_score)

        response = await call_with_backoff(
            self._provider,
            self.build_prompt(document, dimension_score, critique, evidence),
            round_number=round_number,
            policy=self._retry_policy,
            system=self.build_system_prompt(),
            json_mode=True,
            label=self.dimension.value,
        )

        error: str | None = None
        try:
            edits, confidence = self.parse_response(response.content)
        except ResponseParseError as exc:
            logger.warning("[%s] Unparseable fixer response: %s", self.dimension.value, exc)
            edits, confidence, error = [], 0.0, f"Unparseable response: {exc}"

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "[%s] Completed in %.0fms with %d edits",
            self.dimension.value, elapsed_ms, len(edits),
        )
        return FixerResult(
            fixer_type=self.dimension,
            suggested_edits=edits,
            confidence=confidence,
            processing_time_ms=elapsed_ms,
            error=error,
        )


def build_fixers(
    profiles: Mapping[Dimension, FixerProfile],
    provider: AIProvider,
    prompts: PromptsConfig,
    retry_policy: RetryPolicy | None = None,
    max_edits: int = DEFAULT_MAX_EDITS,
) -> dict[Dimension, Fixer]:
    """Build the dimension -> fixer lookup table used by the orchestrator."""
    missing = [d.value for d in Dimension if d not in profiles]
    if missing:
        raise ValueError(f"No fixer profile for: {', '.join(missing)}")
    return {
        dim: Fixer(profiles[dim], provider, prompts, retry_policy=retry_policy, max_edits=max_edits)
        for dim in Dimension
    }
