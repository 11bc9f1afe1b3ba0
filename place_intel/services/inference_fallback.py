"""
Inference fallback for metrics with no visit-report coverage

When reports say nothing about connectivity, noise or laptop suitability,
the review-NLP estimate stands in, pulled from a neutral midpoint toward
the inferred extreme in proportion to its confidence.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from place_intel.collectors.signal_extractor import ExtractedSignals
from place_intel.models.intelligence import Provenance
from place_intel.models.signals import InferredReviewSignal

logger = logging.getLogger(__name__)


WIFI_MIDPOINT = 3.0
WIFI_PRESENT_EXTREME = 5.0

NOISE_MIDPOINT = 3.0
INFERRED_NOISE_EXTREMES = {
    "quiet": 1.0,
    "moderate": 3.0,
    "loud": 5.0,
}

LAPTOP_MIDPOINT = 50.0
LAPTOP_STUDY_EXTREME = 100.0


@dataclass(frozen=True)
class ResolvedMetric:
    value: Optional[float]
    provenance: Provenance

    @property
    def present(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class ResolvedMetrics:
    wifi: ResolvedMetric
    noise: ResolvedMetric
    laptop_pct: ResolvedMetric


_ABSENT = ResolvedMetric(None, Provenance.NONE)


def _blend(midpoint: float, extreme: float, confidence: float) -> float:
    confidence = max(0.0, min(1.0, confidence))
    return midpoint + (extreme - midpoint) * confidence


def resolve_wifi(observed: Optional[float], inferred: Optional[InferredReviewSignal]) -> ResolvedMetric:
    if observed is not None:
        return ResolvedMetric(observed, Provenance.OBSERVED)
    if inferred is not None and inferred.has_wifi:
        return ResolvedMetric(
            _blend(WIFI_MIDPOINT, WIFI_PRESENT_EXTREME, inferred.wifi_confidence),
            Provenance.INFERRED,
        )
    return _ABSENT


def resolve_noise(observed: Optional[float], inferred: Optional[InferredReviewSignal]) -> ResolvedMetric:
    if observed is not None:
        return ResolvedMetric(observed, Provenance.OBSERVED)
    if inferred is not None and inferred.inferred_noise in INFERRED_NOISE_EXTREMES:
        extreme = INFERRED_NOISE_EXTREMES[inferred.inferred_noise]
        return ResolvedMetric(
            _blend(NOISE_MIDPOINT, extreme, inferred.inferred_noise_confidence),
            Provenance.INFERRED,
        )
    return _ABSENT


def resolve_laptop(observed: Optional[float], inferred: Optional[InferredReviewSignal]) -> ResolvedMetric:
    if observed is not None:
        return ResolvedMetric(observed, Provenance.OBSERVED)
    if inferred is not None and inferred.good_for_studying:
        # No dedicated confidence for studying; borrow the other two
        confidence = (inferred.wifi_confidence + inferred.inferred_noise_confidence) / 2
        return ResolvedMetric(
            _blend(LAPTOP_MIDPOINT, LAPTOP_STUDY_EXTREME, confidence),
            Provenance.INFERRED,
        )
    return _ABSENT


def resolve_metrics(
    signals: ExtractedSignals,
    inferred: Optional[InferredReviewSignal],
) -> ResolvedMetrics:
    """Value-or-None plus provenance for each of the fallback-eligible metrics."""
    resolved = ResolvedMetrics(
        wifi=resolve_wifi(signals.wifi_avg, inferred),
        noise=resolve_noise(signals.noise_avg, inferred),
        laptop_pct=resolve_laptop(signals.laptop_pct, inferred),
    )
    inferred_fields = [
        name for name in ("wifi", "noise", "laptop_pct")
        if getattr(resolved, name).provenance == Provenance.INFERRED
    ]
    if inferred_fields:
        logger.debug(f"Using review inference for {', '.join(inferred_fields)}")
    return resolved
