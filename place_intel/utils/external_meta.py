"""
Summary statistics over the third-party rating signals for a venue
"""
import math
from typing import Sequence

from place_intel.models.intelligence import ExternalSignalMeta
from place_intel.models.signals import ExternalRatingSignal


SINGLE_RATING_CONSENSUS = 0.6
# Rating spread at which sources are considered to fully disagree
FULL_DISAGREEMENT_SPREAD = 2.5
DIVERSITY_SATURATION = 2

DIVERSITY_WEIGHT = 0.35
CONSENSUS_WEIGHT = 0.35
SUPPORT_WEIGHT = 0.30


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def rating_consensus(ratings: Sequence[float]) -> float:
    """
    How much the sources agree: 0 with no ratings, 0.6 for a lone rating,
    otherwise 1 minus the spread relative to a 2.5-star disagreement.
    """
    if not ratings:
        return 0.0
    if len(ratings) == 1:
        return SINGLE_RATING_CONSENSUS
    spread = max(ratings) - min(ratings)
    return clamp(1 - spread / FULL_DISAGREEMENT_SPREAD)


def review_support(review_count: int) -> float:
    """Log-scaled review volume; 999 reviews saturates."""
    return clamp(math.log10(1 + max(0, review_count)) / 3)


def compute_external_meta(signals: Sequence[ExternalRatingSignal]) -> ExternalSignalMeta:
    if not signals:
        return ExternalSignalMeta()

    provider_count = len({signal.source for signal in signals})
    diversity = clamp(provider_count / DIVERSITY_SATURATION)
    total_reviews = sum(signal.review_count or 0 for signal in signals)
    consensus = rating_consensus([s.rating for s in signals if s.rating is not None])
    trust = clamp(
        DIVERSITY_WEIGHT * diversity
        + CONSENSUS_WEIGHT * consensus
        + SUPPORT_WEIGHT * review_support(total_reviews)
    )

    return ExternalSignalMeta(
        provider_count=provider_count,
        provider_diversity=round(diversity, 3),
        review_count=total_reviews,
        rating_consensus=round(consensus, 3),
        trust_score=round(trust, 3),
    )
