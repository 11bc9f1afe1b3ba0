"""
Vibe Classification
Scores a venue across five use-case dimensions (0-100 each)

- study: connectivity, outlets, quiet, calm crowd, laptop use
- date: drinks, cozy ambiance, moderate noise, chill music
- social: energy, mid-level crowd, upbeat ambiance and music
- quick: drinks, calm crowd, budget, food and rating
- aesthetic: photogenic signals, ambiance and decor

Missing inputs take a mildly negative neutral value rather than zero, so a
venue with no data lands mid-table instead of at the bottom.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from place_intel.models.intelligence import VibeScores, VibeType
from place_intel.models.signals import InferredReviewSignal


@dataclass
class VibeInputs:
    """Aggregated venue signals consumed by the classifier"""
    noise: Optional[float] = None  # 1-5
    busyness: Optional[float] = None  # 1-5
    wifi: Optional[float] = None  # 1-5
    drink_quality: Optional[float] = None  # 1-5
    drink_price: Optional[float] = None  # 1-3
    top_outlet: Optional[str] = None
    laptop_pct: Optional[float] = None  # 0-100
    ambiance: Optional[str] = None
    intent_counts: Dict[str, int] = field(default_factory=dict)
    tag_scores: Dict[str, float] = field(default_factory=dict)
    photo_tags: List[str] = field(default_factory=list)
    external_rating: Optional[float] = None
    open_now: bool = False
    nlp: Optional[InferredReviewSignal] = None


STUDY_INTENTS = ("deep_work", "quiet_reading", "group_study")
DATE_INTENTS = ("date_night",)
SOCIAL_INTENTS = ("hangout_friends", "late_night_open")
QUICK_INTENTS = ("quick_pickup", "coffee_quality", "pastry_snack")
AESTHETIC_INTENTS = ("aesthetic_photos",)

OUTLET_VIBE_SCORES = {"plenty": 1.0, "some": 0.75, "few": 0.4, "none": 0.1}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _ratio(value: Optional[float], low: float, high: float) -> float:
    if value is None or not math.isfinite(value) or high <= low:
        return 0.5
    return _clamp((value - low) / (high - low))


def _sweet_spot(value: Optional[float], low: float, high: float, spread: float = 1.2) -> float:
    """1 inside [low, high], Gaussian falloff outside."""
    if value is None or not math.isfinite(value):
        return 0.45
    if low <= value <= high:
        return 1.0
    delta = abs(value - (low + high) / 2)
    return _clamp(math.exp(-((delta / spread) ** 2)))


def _outlet_score(value: Optional[str]) -> float:
    return OUTLET_VIBE_SCORES.get((value or "").strip().lower(), 0.45)


def _tag_score(tag_scores: Dict[str, float], keys: Sequence[str]) -> float:
    return _clamp(sum(tag_scores.get(key, 0.0) for key in keys) / 10)


def _intent_ratio(intent_counts: Dict[str, int], keys: Sequence[str]) -> float:
    total = sum(intent_counts.values())
    if total <= 0:
        return 0.0
    return _clamp(sum(intent_counts.get(key, 0) for key in keys) / total)


def _has_photo_tag(photo_tags: Sequence[str], words: Sequence[str]) -> bool:
    joined = " ".join(photo_tags).lower()
    return bool(joined) and any(word in joined for word in words)


def _confidence_or(value: Optional[float], default: float) -> float:
    return _clamp(value) if value is not None else default


def compute_vibe_scores(inputs: VibeInputs) -> VibeScores:
    nlp = inputs.nlp
    ambiance = (inputs.ambiance or "").lower()
    music = ((nlp.music_atmosphere if nlp else None) or "").lower()
    open_bonus = 0.08 if inputs.open_now else 0.0

    quietness = 1 - _ratio(inputs.noise, 1, 5)
    energy = _ratio(inputs.noise, 1, 5)
    crowd_calm = 1 - _ratio(inputs.busyness, 1, 5)
    crowd_social = _sweet_spot(inputs.busyness, 2.2, 3.8, 1.1)
    wifi = _ratio(inputs.wifi, 1, 5)
    drink = _ratio(inputs.drink_quality, 1, 5)
    laptop = _ratio(inputs.laptop_pct, 0, 100)
    budget = 1 - _ratio(inputs.drink_price, 1, 3)
    outlet = _outlet_score(inputs.top_outlet)
    rating = _ratio(inputs.external_rating, 2.5, 5)

    ambiance_cozy = 1.0 if ambiance in ("cozy", "intimate", "rustic") else 0.45
    ambiance_social = 1.0 if ambiance in ("energetic", "bright", "modern") else 0.45
    ambiance_aesthetic = 1.0 if ambiance in ("modern", "rustic", "intimate", "cozy", "bright") else 0.45
    music_date = 1.0 if music == "chill" else 0.5 if music == "upbeat" else 0.35
    music_social = 1.0 if music in ("upbeat", "live", "chill") else 0.45

    intents = inputs.intent_counts
    tags = inputs.tag_scores

    nlp_study = 1.0 if nlp and nlp.good_for_studying else 0.35
    nlp_dates = _confidence_or(nlp.good_for_dates if nlp else None, 0.4)
    nlp_groups = _confidence_or(nlp.good_for_groups if nlp else None, 0.4)
    nlp_food = _confidence_or(nlp.food_quality_signal if nlp else None, 0.45)
    nlp_instagram = _confidence_or(nlp.instagram_worthy if nlp else None, 0.45)
    nlp_aesthetic_vibe = (
        1.0
        if nlp and (nlp.aesthetic_vibe or "").lower() in ("cozy", "modern", "rustic", "industrial", "classic")
        else 0.45
    )

    photo_aesthetic = 1.0 if _has_photo_tag(
        inputs.photo_tags, ("aesthetic", "decor", "patio", "latte", "interior")
    ) else 0.4
    photo_social = 1.0 if _has_photo_tag(inputs.photo_tags, ("group", "friends", "seating")) else 0.35

    study = (
        12
        + wifi * 22
        + outlet * 14
        + quietness * 16
        + crowd_calm * 10
        + laptop * 12
        + _intent_ratio(intents, STUDY_INTENTS) * 7
        + _tag_score(tags, ("Study", "Quiet", "Wi-Fi", "Outlets")) * 7
        + nlp_study * 8
    )

    date = (
        10
        + drink * 16
        + ambiance_cozy * 14
        + _sweet_spot(inputs.noise, 2, 3.4, 0.9) * 10
        + crowd_calm * 6
        + music_date * 8
        + nlp_dates * 12
        + nlp_instagram * 8
        + _tag_score(tags, ("Cozy", "Bright")) * 6
        + open_bonus * 100
    )

    social = (
        10
        + _sweet_spot(energy * 5, 2.6, 4.2, 1.3) * 10
        + crowd_social * 12
        + ambiance_social * 12
        + music_social * 10
        + drink * 6
        + _intent_ratio(intents, SOCIAL_INTENTS) * 8
        + nlp_groups * 10
        + _tag_score(tags, ("Social", "Spacious", "Late-night")) * 8
        + photo_social * 4
        + open_bonus * 100
    )

    quick = (
        12
        + drink * 22
        + crowd_calm * 14
        + budget * 10
        + _intent_ratio(intents, QUICK_INTENTS) * 8
        + nlp_food * 10
        + _tag_score(tags, ("Good Coffee",)) * 8
        + rating * 8
    )

    aesthetic = (
        8
        + nlp_instagram * 20
        + nlp_aesthetic_vibe * 10
        + ambiance_aesthetic * 16
        + drink * 8
        + _intent_ratio(intents, AESTHETIC_INTENTS) * 8
        + _tag_score(tags, ("Bright", "Cozy", "Outdoor Seating")) * 8
        + photo_aesthetic * 12
        + rating * 8
    )

    return VibeScores(
        study=round_half_up(_clamp(study, 0, 100)),
        date=round_half_up(_clamp(date, 0, 100)),
        social=round_half_up(_clamp(social, 0, 100)),
        quick=round_half_up(_clamp(quick, 0, 100)),
        aesthetic=round_half_up(_clamp(aesthetic, 0, 100)),
    )


def get_primary_vibe(scores: VibeScores, hour: int, open_now: bool = False) -> VibeType:
    """
    Highest-scoring vibe; ties go to the earlier dimension. A social top
    pick before 10am at a closed venue is demoted to quick.
    """
    ranked = [
        (VibeType.STUDY, scores.study),
        (VibeType.DATE, scores.date),
        (VibeType.SOCIAL, scores.social),
        (VibeType.QUICK, scores.quick),
        (VibeType.AESTHETIC, scores.aesthetic),
    ]
    top = max(ranked, key=lambda entry: entry[1])[0]
    if top == VibeType.SOCIAL and not open_now and hour < 10:
        return VibeType.QUICK
    return top
