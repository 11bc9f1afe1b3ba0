"""
Short-horizon crowd forecast from hour-of-day check-in history
"""
from typing import Dict, List, Optional

from place_intel.collectors.signal_extractor import HourlyBucket
from place_intel.models.intelligence import CrowdForecastPoint, CrowdLevel


FORECAST_POINTS = 6

COUNT_WEIGHT = 0.65
BUSYNESS_WEIGHT = 0.35
NEUTRAL_BUSYNESS = 3.0

LOW_THRESHOLD = 0.34
HIGH_THRESHOLD = 0.67


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def to_12_hour_label(hour: int) -> str:
    meridiem = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}{meridiem}"


def forecast_level(score: float) -> CrowdLevel:
    if score <= LOW_THRESHOLD:
        return CrowdLevel.LOW
    if score >= HIGH_THRESHOLD:
        return CrowdLevel.HIGH
    return CrowdLevel.MODERATE


def build_crowd_forecast(
    hourly: Dict[int, HourlyBucket],
    overall_busyness: Optional[float],
    current_hour: int,
    base_confidence: float,
) -> List[CrowdForecastPoint]:
    """
    Forecast occupancy for the current hour and the five after it.

    Each point blends the hour's report count (relative to the busiest
    hour) with the hour's average crowd level on the 1-5 scale. Hours with
    no reported crowd level use the venue's overall average instead.

    Args:
        hourly: Hour-of-day histogram from the signal extractor
        overall_busyness: Venue-wide average crowd level, if any
        current_hour: Local hour of day the forecast starts from
        base_confidence: The venue's overall confidence (0-1)

    Returns:
        Six CrowdForecastPoint; level unknown throughout when there is no history
    """
    has_history = bool(hourly)
    max_count = max([1] + [bucket.count for bucket in hourly.values()])
    fallback_busyness = overall_busyness if overall_busyness is not None else NEUTRAL_BUSYNESS

    points = []
    for offset in range(FORECAST_POINTS):
        hour = (current_hour + offset) % 24
        bucket = hourly.get(hour)
        count_norm = clamp((bucket.count if bucket else 0) / max_count)
        local_confidence = clamp(base_confidence * 0.6 + count_norm * 0.4, 0.1, 0.95)

        if has_history:
            busy_avg = bucket.busyness_avg if bucket and bucket.busyness_avg is not None else fallback_busyness
            score = clamp(COUNT_WEIGHT * count_norm + BUSYNESS_WEIGHT * clamp(busy_avg / 5))
            level = forecast_level(score)
        else:
            score = 0.0
            level = CrowdLevel.UNKNOWN

        points.append(CrowdForecastPoint(
            offset_hours=offset,
            label="Now" if offset == 0 else f"+{offset}h",
            local_hour_label=to_12_hour_label(hour),
            level=level,
            score=round(score, 2),
            confidence=round(local_confidence, 2),
        ))

    return points
