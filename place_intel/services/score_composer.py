"""
Work Score Composition
Blends every upstream signal into the 0-100 work score

Score terms (points):
- Venue baseline: 0 (outdoor) to 20 (workspace) by venue class
- Connectivity: up to 24
- Laptop suitability: up to 14
- Outlets: up to 10
- Noise (inverted): up to 16
- Crowd (inverted, weather adjusted): up to 14
- Tag affinity: log-scaled, ~6 per decade of tag weight
- External rating: up to 14
- Study venue boost: 6
- Open now: +/-4
- Momentum: half the momentum delta (+/-10)
- Nightlife penalty: -8

Every term is recorded with its provenance so the final number can be
audited term by term.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from place_intel.collectors.signal_extractor import ExtractedSignals
from place_intel.models.intelligence import (
    BestTime,
    CrowdForecastPoint,
    CrowdLevel,
    FactorScore,
    Momentum,
    Provenance,
    Trend,
)
from place_intel.models.signals import ContextSignal, CrowdImpact, ExternalRatingSignal
from place_intel.services.inference_fallback import ResolvedMetrics

logger = logging.getLogger(__name__)


class VenueClass(str, Enum):
    WORKSPACE = "workspace"
    CAFE = "cafe"
    MIXED = "mixed"
    OTHER = "other"
    OUTDOOR = "outdoor"


WORKSPACE_PATTERN = re.compile(r"library|cowork|university|study|workspace|bookstore")
CAFE_PATTERN = re.compile(r"cafe|café|coffee|(?<![a-z])tea(?![a-z])|bakery")
MIXED_PATTERN = re.compile(r"restaurant|(?<![a-z])food(?![a-z])|hotel|lodging|meal")
OUTDOOR_PATTERN = re.compile(
    r"(?<![a-z])park(?![a-z])|trail|beach|campground|playground|stadium|garden|natural_feature"
)
NIGHTLIFE_PATTERN = re.compile(r"(?<![a-z])bar(?![a-z])|night_club|casino|(?<![a-z])pub(?![a-z])")

FACTOR_NAMES = (
    "venue_baseline",
    "connectivity",
    "laptop",
    "outlets",
    "noise",
    "crowd",
    "tag_affinity",
    "external_rating",
    "study_boost",
    "open_now",
    "momentum",
    "nightlife_penalty",
)

NOT_SUITABLE_HIGHLIGHT = "Not suitable for focused work"
MAX_HIGHLIGHTS = 4
MAX_USE_CASES = 3


def classify_venue(text: str) -> VenueClass:
    """Keyword classification over name, place types and stored category."""
    text = text.lower()
    if WORKSPACE_PATTERN.search(text):
        return VenueClass.WORKSPACE
    if CAFE_PATTERN.search(text):
        return VenueClass.CAFE
    if MIXED_PATTERN.search(text):
        return VenueClass.MIXED
    if OUTDOOR_PATTERN.search(text):
        return VenueClass.OUTDOOR
    return VenueClass.OTHER


def _on_scale(value: float) -> float:
    return max(1.0, min(5.0, value))


def derive_crowd_level(busyness: Optional[float]) -> CrowdLevel:
    if busyness is None:
        return CrowdLevel.UNKNOWN
    if busyness <= 2.1:
        return CrowdLevel.LOW
    if busyness >= 3.8:
        return CrowdLevel.HIGH
    return CrowdLevel.MODERATE


def derive_best_time(bucket_counts: Dict[str, int]) -> BestTime:
    """Most frequent check-in bucket; ties resolve morning first."""
    ranked = [
        (BestTime.MORNING, bucket_counts.get("morning", 0)),
        (BestTime.AFTERNOON, bucket_counts.get("afternoon", 0)),
        (BestTime.EVENING, bucket_counts.get("evening", 0)),
        (BestTime.LATE, bucket_counts.get("late", 0)),
    ]
    best, count = max(ranked, key=lambda entry: entry[1])
    return best if count > 0 else BestTime.ANYTIME


def average_rating(signals: Sequence[ExternalRatingSignal]) -> Optional[float]:
    ratings = [s.rating for s in signals if s.rating is not None]
    return sum(ratings) / len(ratings) if ratings else None


@dataclass
class ComposedScore:
    work_score: int
    breakdown: Dict[str, FactorScore] = field(default_factory=dict)
    venue_class: VenueClass = VenueClass.OTHER
    hard_stop: bool = False


class ScoreComposer:
    """
    Composes the work score from aggregated, provenance-tagged signals.
    """

    BASELINES = {
        VenueClass.WORKSPACE: 20.0,
        VenueClass.CAFE: 16.0,
        VenueClass.MIXED: 8.0,
        VenueClass.OTHER: 6.0,
        VenueClass.OUTDOOR: 0.0,
    }

    # Floor applied when the raw sum is <= 0 for a venue that was not hard-stopped
    FLOORS = {
        VenueClass.WORKSPACE: 10,
        VenueClass.CAFE: 8,
        VenueClass.MIXED: 5,
        VenueClass.OTHER: 4,
        VenueClass.OUTDOOR: 2,
    }

    CONNECTIVITY_MAX = 24.0
    LAPTOP_WEIGHT = 0.14  # per percentage point
    OUTLET_MAX = 10.0
    NOISE_MAX = 16.0
    CROWD_MAX = 14.0
    TAG_AFFINITY_SCALE = 6.0
    EXTERNAL_RATING_MAX = 14.0
    STUDY_BOOST = 6.0
    OPEN_NOW_POINTS = 4.0
    MOMENTUM_WEIGHT = 0.5
    NIGHTLIFE_PENALTY = -8.0

    TAG_WEIGHTS = {
        "Wi-Fi": 1.4,
        "Outlets": 1.2,
        "Seating": 1.0,
        "Quiet": 1.1,
    }

    WEATHER_INCREASE_SHIFT = 0.5
    WEATHER_DECREASE_SHIFT = -0.3

    HARD_STOP_MAX_REPORTS = 2

    def compose(
        self,
        *,
        classification_text: str,
        signals: ExtractedSignals,
        resolved: ResolvedMetrics,
        tag_scores: Dict[str, float],
        external_signals: Sequence[ExternalRatingSignal],
        stored_rating: Optional[float],
        context_signals: Sequence[ContextSignal],
        open_now: Optional[bool],
        open_now_provenance: Provenance,
        momentum: Momentum,
    ) -> ComposedScore:
        """
        Compose the work score.

        Args:
            classification_text: Venue name, place types and stored category
            signals: Aggregates from the signal extractor
            resolved: Connectivity, noise and laptop values after inference fallback
            tag_scores: Community tag weights (tag -> weight)
            external_signals: Live third-party signals
            stored_rating: Stored average rating, used when no live rating exists
            context_signals: Weather context (zero or one)
            open_now: Open status, if known
            open_now_provenance: Where open_now came from
            momentum: Momentum over the trailing windows

        Returns:
            ComposedScore with the rounded, clamped score and its breakdown
        """
        venue_class = classify_venue(classification_text)
        type_provenance = Provenance.API if classification_text.strip() else Provenance.NONE
        breakdown: Dict[str, FactorScore] = {}

        def add(name: str, points: float, provenance: Provenance, raw: Optional[float] = None) -> float:
            breakdown[name] = FactorScore(
                points=round(points, 2),
                provenance=provenance,
                raw_value=round(raw, 3) if raw is not None else None,
            )
            return points

        seating_tags = sum(tag_scores.get(tag, 0.0) for tag in ("Wi-Fi", "Outlets", "Seating"))
        if (
            venue_class == VenueClass.OUTDOOR
            and not resolved.wifi.present
            and seating_tags <= 0
            and signals.sample_size < self.HARD_STOP_MAX_REPORTS
        ):
            for name in FACTOR_NAMES:
                add(name, 0.0, type_provenance if name == "venue_baseline" else Provenance.NONE)
            logger.debug(f"Hard stop for outdoor venue '{classification_text[:40]}'")
            return ComposedScore(work_score=0, breakdown=breakdown, venue_class=venue_class, hard_stop=True)

        total = 0.0
        total += add("venue_baseline", self.BASELINES[venue_class], type_provenance)

        total += add(
            "connectivity",
            _on_scale(resolved.wifi.value) / 5 * self.CONNECTIVITY_MAX if resolved.wifi.present else 0.0,
            resolved.wifi.provenance,
            resolved.wifi.value,
        )
        total += add(
            "laptop",
            (resolved.laptop_pct.value or 0.0) * self.LAPTOP_WEIGHT,
            resolved.laptop_pct.provenance,
            resolved.laptop_pct.value,
        )
        total += add(
            "outlets",
            (signals.outlet_avg or 0.0) * self.OUTLET_MAX,
            Provenance.OBSERVED if signals.outlet_avg is not None else Provenance.NONE,
            signals.outlet_avg,
        )

        noise = resolved.noise.value
        total += add(
            "noise",
            (5 - _on_scale(noise)) / 4 * self.NOISE_MAX if noise is not None else 0.0,
            resolved.noise.provenance,
            noise,
        )

        busyness = self._weather_adjusted_busyness(signals.busyness_avg, context_signals)
        total += add(
            "crowd",
            (5 - busyness) / 4 * self.CROWD_MAX if busyness is not None else 0.0,
            Provenance.OBSERVED if busyness is not None else Provenance.NONE,
            busyness,
        )

        tag_boost = sum(
            max(0.0, tag_scores.get(tag, 0.0)) * weight for tag, weight in self.TAG_WEIGHTS.items()
        )
        total += add(
            "tag_affinity",
            math.log10(1 + tag_boost) * self.TAG_AFFINITY_SCALE,
            Provenance.OBSERVED if tag_boost > 0 else Provenance.NONE,
            tag_boost,
        )

        rating = average_rating(external_signals)
        if rating is None:
            rating = stored_rating
        total += add(
            "external_rating",
            (rating or 0.0) / 5 * self.EXTERNAL_RATING_MAX,
            Provenance.API if rating is not None else Provenance.NONE,
            rating,
        )

        study_match = bool(WORKSPACE_PATTERN.search(classification_text.lower()))
        total += add(
            "study_boost",
            self.STUDY_BOOST if study_match else 0.0,
            Provenance.API if study_match else Provenance.NONE,
        )

        if open_now is None:
            total += add("open_now", 0.0, Provenance.NONE)
        else:
            total += add(
                "open_now",
                self.OPEN_NOW_POINTS if open_now else -self.OPEN_NOW_POINTS,
                open_now_provenance,
            )

        has_momentum = momentum.trend != Trend.INSUFFICIENT_DATA
        total += add(
            "momentum",
            momentum.delta * self.MOMENTUM_WEIGHT,
            Provenance.OBSERVED if has_momentum else Provenance.NONE,
            momentum.delta,
        )

        nightlife = bool(NIGHTLIFE_PATTERN.search(classification_text.lower()))
        total += add(
            "nightlife_penalty",
            self.NIGHTLIFE_PENALTY if nightlife else 0.0,
            Provenance.API if nightlife else Provenance.NONE,
        )

        if total <= 0:
            work_score = self.FLOORS[venue_class]
        else:
            work_score = int(math.floor(total + 0.5))
        work_score = max(0, min(100, work_score))

        return ComposedScore(work_score=work_score, breakdown=breakdown, venue_class=venue_class)

    def _weather_adjusted_busyness(
        self,
        busyness: Optional[float],
        context_signals: Sequence[ContextSignal],
    ) -> Optional[float]:
        if busyness is None:
            return None
        for context in context_signals:
            if context.crowd_impact == CrowdImpact.INCREASE:
                busyness += self.WEATHER_INCREASE_SHIFT * context.confidence
            elif context.crowd_impact == CrowdImpact.DECREASE:
                busyness += self.WEATHER_DECREASE_SHIFT * context.confidence
        return max(1.0, min(5.0, busyness))


def derive_highlights(
    *,
    hard_stop: bool,
    resolved: ResolvedMetrics,
    busyness: Optional[float],
    forecast: Sequence[CrowdForecastPoint],
    momentum: Momentum,
    external_signals: Sequence[ExternalRatingSignal],
    open_now: Optional[bool],
) -> List[str]:
    """Human-readable highlights in priority order, at most four."""
    highlights = []
    if hard_stop:
        highlights.append(NOT_SUITABLE_HIGHLIGHT)

    wifi = resolved.wifi
    if wifi.provenance == Provenance.OBSERVED and (wifi.value or 0) >= 4:
        highlights.append("Fast WiFi")
    elif wifi.provenance == Provenance.INFERRED:
        highlights.append("WiFi mentioned in reviews")

    if (resolved.laptop_pct.value or 0) >= 70:
        highlights.append("Laptop friendly")
    if busyness is not None and busyness <= 2.2:
        highlights.append("Usually not crowded")
    if resolved.noise.value is not None and resolved.noise.value <= 2.4:
        highlights.append("Typically quiet")
    if forecast and forecast[0].level == CrowdLevel.LOW:
        highlights.append("Low crowd now")
    if momentum.trend == Trend.IMPROVING:
        highlights.append("Trending up lately")
    if any((s.review_count or 0) >= 100 for s in external_signals):
        highlights.append("Strong external reviews")
    if open_now is True:
        highlights.append("Open now")

    return highlights[:MAX_HIGHLIGHTS]


def derive_use_cases(
    *,
    work_score: int,
    crowd_level: CrowdLevel,
    best_time: BestTime,
    open_now: Optional[bool],
    external_signals: Sequence[ExternalRatingSignal],
    wifi: Optional[float],
    laptop_pct: Optional[float],
) -> List[str]:
    use_cases = []
    if work_score >= 78:
        use_cases.append("Deep work")
    if (wifi or 0) >= 3.8 and (laptop_pct or 0) >= 60:
        use_cases.append("Laptop sessions")
    if crowd_level == CrowdLevel.MODERATE:
        use_cases.append("Group study")
    if crowd_level == CrowdLevel.HIGH:
        use_cases.append("Social energy")
    if (average_rating(external_signals) or 0) >= 4.2:
        use_cases.append("Coffee meetups")
    if best_time == BestTime.LATE or open_now is True:
        use_cases.append("Late sessions")
    if not use_cases:
        use_cases.append("Quick focus stop")

    return list(dict.fromkeys(use_cases))[:MAX_USE_CASES]


# Global composer instance
score_composer = ScoreComposer()
