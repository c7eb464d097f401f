"""Quality gate: map a final score to a publish tier and a refund decision."""

from dataclasses import dataclass
from enum import Enum

from src.models import RefinementRunResult

HIGH_TIER_THRESHOLD = 8.0
ACCEPTABLE_TIER_THRESHOLD = 6.0


class QualityTier(str, Enum):
    HIGH = "high"
    ACCEPTABLE = "acceptable"
    FAILED = "failed"


@dataclass(frozen=True)
class TierDecision:
    tier: QualityTier
    final_score: float
    attempts: int
    publishable: bool
    warning_badge: bool
    refund_required: bool
    reasoning: str


def get_quality_tier(score: float) -> QualityTier:
    if score >= HIGH_TIER_THRESHOLD:
        return QualityTier.HIGH
    if score >= ACCEPTABLE_TIER_THRESHOLD:
        return QualityTier.ACCEPTABLE
    return QualityTier.FAILED


def decide_tier(score: float, attempts: int = 0) -> TierDecision:
    """Tier decision for a final score.

    >= 8.0 publishes normally; 6.0 up to 8.0 publishes with a warning badge;
    below 6.0 is not published and the consumed credit is refunded.
    Exactly 6.0 is acceptable and is not refunded.
    """
    tier = get_quality_tier(score)
    if tier is QualityTier.HIGH:
        reasoning = f"Score {score:g} >= {HIGH_TIER_THRESHOLD}: high quality, publishing normally"
    elif tier is QualityTier.ACCEPTABLE:
        reasoning = f"Score {score:g} >= {ACCEPTABLE_TIER_THRESHOLD}: acceptable quality, publishing with warning"
    else:
        reasoning = f"Score {score:g} < {ACCEPTABLE_TIER_THRESHOLD}: failed quality gate, refunding credit"

    return TierDecision(
        tier=tier,
        final_score=score,
        attempts=attempts,
        publishable=tier is not QualityTier.FAILED,
        warning_badge=tier is QualityTier.ACCEPTABLE,
        refund_required=tier is QualityTier.FAILED,
        reasoning=reasoning,
    )


def gate_refinement_result(result: RefinementRunResult) -> TierDecision:
    return decide_tier(result.final_score, attempts=len(result.attempts))
