"""
Reliability Scoring
Turns sample size, coverage and per-metric agreement into a 0-1 trust score

Score formula:
- Sample size: 55% weight, log-scaled (diminishing returns on count)
- Data coverage: 30% weight
- Agreement (1 - variance penalty): 15% weight
- External trust: +12% boost, capped with the rest at 0.98
"""
import math
import statistics
from typing import Optional, Sequence

from place_intel.models.intelligence import Reliability


SAMPLE_WEIGHT = 0.55
COVERAGE_WEIGHT = 0.30
AGREEMENT_WEIGHT = 0.15
EXTERNAL_TRUST_WEIGHT = 0.12

MIN_SCORE = 0.05
MAX_SCORE = 0.98
NO_DATA_SCORE = 0.1

# Variance contributed by a metric nobody reported on
UNOBSERVED_VARIANCE = 0.5

TRACKED_METRICS = 4


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def numeric_variance(values: Sequence[float]) -> float:
    """
    Standard deviation on the 1-5 scale, halved and clamped to 0-1.
    """
    if not values:
        return UNOBSERVED_VARIANCE
    if len(values) == 1:
        return 0.0
    return clamp(statistics.pstdev(values) / 2)


def vote_variance(votes: Sequence[bool]) -> float:
    """
    Bernoulli variance scaled to 0-1: 4p(1-p), peaking at an even split.
    """
    if not votes:
        return UNOBSERVED_VARIANCE
    p = sum(votes) / len(votes)
    return clamp(4 * p * (1 - p))


def compute_reliability(
    sample_size: int,
    wifi: Sequence[float],
    busyness: Sequence[float],
    noise: Sequence[float],
    laptop_votes: Sequence[bool],
    external_trust: Optional[float] = None,
) -> Reliability:
    """
    Compute reliability of the observed data.

    Args:
        sample_size: Number of visit reports considered
        wifi, busyness, noise: Non-null observations of each numeric metric
        laptop_votes: Non-null laptop-suitability votes
        external_trust: ExternalSignalMeta trust score, if any

    Returns:
        Reliability with every field clamped to its range
    """
    if sample_size <= 0:
        return Reliability(
            sample_size=0,
            data_coverage=0.0,
            variance_penalty=1.0,
            score=NO_DATA_SCORE,
        )

    observed = len(wifi) + len(busyness) + len(noise) + len(laptop_votes)
    coverage = clamp(observed / (sample_size * TRACKED_METRICS))

    variance_penalty = clamp(
        (
            numeric_variance(wifi)
            + numeric_variance(busyness)
            + numeric_variance(noise)
            + vote_variance(laptop_votes)
        )
        / TRACKED_METRICS
    )

    sample_score = clamp(math.log10(1 + sample_size) / 2)

    composite = (
        SAMPLE_WEIGHT * sample_score
        + COVERAGE_WEIGHT * coverage
        + AGREEMENT_WEIGHT * (1 - variance_penalty)
        + EXTERNAL_TRUST_WEIGHT * clamp(external_trust or 0.0)
    )

    return Reliability(
        sample_size=sample_size,
        data_coverage=round(coverage, 3),
        variance_penalty=round(variance_penalty, 3),
        score=round(clamp(composite, MIN_SCORE, MAX_SCORE), 3),
    )
