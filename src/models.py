"""Dataclasses and enums for the refinement pipeline. No I/O."""

from dataclasses import dataclass, field
from enum import Enum


class Dimension(str, Enum):
    """The seven quality axes a document is scored on, in deployment order."""

    FIRST_PRINCIPLES_COHERENCE = "firstPrinciplesCoherence"
    INTERNAL_CONSISTENCY = "internalConsistency"
    EVIDENCE_QUALITY = "evidenceQuality"
    ACCESSIBILITY = "accessibility"
    OBJECTIVITY = "objectivity"
    FACTUAL_ACCURACY = "factualAccuracy"
    BIAS_DETECTION = "biasDetection"


class EditPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: object) -> "EditPriority":
        """Normalize an oracle-supplied priority; anything unknown is MEDIUM."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


MIN_SCORE = 0.0
MAX_SCORE = 10.0

DimensionScores = dict[Dimension, float]

# Contribution of each dimension to the overall score; sums to 1
DIMENSION_WEIGHTS: dict[Dimension, float] = {
    Dimension.FIRST_PRINCIPLES_COHERENCE: 0.20,
    Dimension.INTERNAL_CONSISTENCY: 0.15,
    Dimension.EVIDENCE_QUALITY: 0.20,
    Dimension.ACCESSIBILITY: 0.15,
    Dimension.OBJECTIVITY: 0.10,
    Dimension.FACTUAL_ACCURACY: 0.15,
    Dimension.BIAS_DETECTION: 0.05,
}


def weighted_overall(scores: DimensionScores) -> float:
    """Weighted mean of the dimension scores, rounded to one decimal."""
    total_weight = sum(DIMENSION_WEIGHTS[dim] for dim in scores)
    weighted = sum(score * DIMENSION_WEIGHTS[dim] for dim, score in scores.items())
    return round(weighted / total_weight, 1)


@dataclass(frozen=True)
class ConsensusResult:
    overall_score: float
    dimension_scores: DimensionScores
    overall_critique: str = ""
    dimension_critiques: dict[Dimension, str] = field(default_factory=dict)
    # Dimensions where evaluators disagreed, mapped to their score spread
    disagreements: dict[Dimension, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        keys = set(self.dimension_scores)
        if keys != set(Dimension):
            missing = sorted(d.value for d in set(Dimension) - keys)
            raise ValueError(f"Dimension scores must cover all dimensions; missing: {missing}")
        for dim, score in self.dimension_scores.items():
            if not MIN_SCORE <= score <= MAX_SCORE:
                raise ValueError(f"Score for {dim.value} out of range: {score}")

    def critique_for(self, dimension: Dimension) -> str:
        return self.dimension_critiques.get(dimension, "")


@dataclass(frozen=True)
class SuggestedEdit:
    section: str
    original_text: str
    suggested_text: str
    rationale: str
    priority: EditPriority = EditPriority.MEDIUM


@dataclass(frozen=True)
class SkippedEdit:
    edit: SuggestedEdit
    reason: str


@dataclass(frozen=True)
class Evidence:
    title: str
    content: str
    url: str | None = None


@dataclass
class FixerResult:
    fixer_type: Dimension
    suggested_edits: list[SuggestedEdit] = field(default_factory=list)
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    error: str | None = None  # set when the fixer failed or timed out

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class OrchestrationResult:
    fixers_deployed: list[Dimension]
    fixer_results: list[FixerResult]
    all_suggested_edits: list[SuggestedEdit]
    total_processing_time_ms: float


@dataclass
class ReconciliationResult:
    revised_document: str
    edits_applied: list[SuggestedEdit] = field(default_factory=list)
    edits_skipped: list[SkippedEdit] = field(default_factory=list)
    failure: str | None = None  # set on the soft-failure path


@dataclass(frozen=True)
class RefinementAttempt:
    attempt_number: int
    score_before: float
    score_after: float
    fixers_deployed: list[Dimension]
    edits_applied: list[SuggestedEdit]
    edits_skipped: list[SkippedEdit]
    dimension_changes: dict[Dimension, tuple[float, float]] = field(default_factory=dict)
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class RefinementRunResult:
    final_document: str
    final_score: float
    success: bool
    attempts: list[RefinementAttempt]
    warning_reason: str | None = None
    final_consensus: ConsensusResult | None = None
    total_processing_time_ms: float = 0.0
