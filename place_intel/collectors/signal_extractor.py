"""
Visit Report Signal Extractor
Turns a venue's recent visit reports into per-metric aggregates

Pure function over its input: no I/O, no clock. Each metric skips missing
values independently, and a metric with no observations aggregates to None
rather than 0 so later stages can tell "absent" from "bad".
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Dict, List, Optional, Sequence

from place_intel.models.signals import VisitReport

logger = logging.getLogger(__name__)


OUTLET_SCORES: Dict[str, float] = {
    "plenty": 1.0,
    "some": 0.75,
    "few": 0.4,
    "none": 0.1,
}

TOP_PHOTO_TAGS = 4


def local_hour(moment: datetime, tz: tzinfo) -> int:
    """Hour of day in the venue's zone. Naive datetimes are taken as already local."""
    if moment.tzinfo is None:
        return moment.hour
    return moment.astimezone(tz).hour


def bucket_hour(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "late"


def mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


@dataclass
class HourlyBucket:
    """Reports seen in one hour of the day"""
    count: int = 0
    busyness_sum: float = 0.0
    busyness_count: int = 0
    noise_sum: float = 0.0
    noise_count: int = 0

    @property
    def busyness_avg(self) -> Optional[float]:
        return self.busyness_sum / self.busyness_count if self.busyness_count else None

    @property
    def noise_avg(self) -> Optional[float]:
        return self.noise_sum / self.noise_count if self.noise_count else None


@dataclass
class ExtractedSignals:
    """Aggregates over one venue's visit reports"""
    sample_size: int = 0

    # Raw per-metric observations, kept for reliability scoring
    wifi_values: List[float] = field(default_factory=list)
    noise_values: List[float] = field(default_factory=list)
    busyness_values: List[float] = field(default_factory=list)
    laptop_votes: List[bool] = field(default_factory=list)

    wifi_avg: Optional[float] = None
    noise_avg: Optional[float] = None
    busyness_avg: Optional[float] = None
    outlet_avg: Optional[float] = None  # 0.1 - 1.0
    laptop_pct: Optional[float] = None  # 0 - 100
    drink_quality_avg: Optional[float] = None
    drink_price_avg: Optional[float] = None

    ambiance_counts: Dict[str, int] = field(default_factory=dict)
    intent_counts: Dict[str, int] = field(default_factory=dict)
    photo_tag_counts: Dict[str, int] = field(default_factory=dict)
    top_ambiance: Optional[str] = None
    top_outlet: Optional[str] = None

    # hour of day (0-23) -> bucket; only hours that saw a report
    hourly: Dict[int, HourlyBucket] = field(default_factory=dict)
    time_bucket_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def photo_tags(self) -> List[str]:
        return list(self.photo_tag_counts)


def extract_signals(reports: Sequence[VisitReport], tz: tzinfo) -> ExtractedSignals:
    """
    Aggregate visit reports for one venue.

    Args:
        reports: Bounded recent window of reports (order does not matter)
        tz: The venue's time zone, used for hour-of-day bucketing

    Returns:
        ExtractedSignals; all averages None and histograms empty for no reports
    """
    signals = ExtractedSignals(sample_size=len(reports))
    if not reports:
        return signals

    outlet_scores: List[float] = []
    drink_quality: List[float] = []
    drink_price: List[float] = []
    outlets: Counter = Counter()
    ambiance: Counter = Counter()
    intents: Counter = Counter()
    photos: Counter = Counter()
    buckets: Counter = Counter()

    for report in reports:
        if report.wifi_speed is not None:
            signals.wifi_values.append(report.wifi_speed)
        if report.noise_level is not None:
            signals.noise_values.append(report.noise_level)
        if report.busyness is not None:
            signals.busyness_values.append(report.busyness)
        if report.laptop_friendly is not None:
            signals.laptop_votes.append(report.laptop_friendly)
        if report.outlet_availability is not None:
            outlet_scores.append(OUTLET_SCORES[report.outlet_availability])
            outlets[report.outlet_availability] += 1
        if report.drink_quality is not None:
            drink_quality.append(report.drink_quality)
        if report.drink_price is not None:
            drink_price.append(report.drink_price)
        if report.ambiance:
            ambiance[report.ambiance] += 1
        intents.update(report.intents)
        photos.update(tag.lower() for tag in report.photo_tags)

        hour = local_hour(report.created_at, tz)
        bucket = signals.hourly.setdefault(hour, HourlyBucket())
        bucket.count += 1
        if report.busyness is not None:
            bucket.busyness_sum += report.busyness
            bucket.busyness_count += 1
        if report.noise_level is not None:
            bucket.noise_sum += report.noise_level
            bucket.noise_count += 1
        buckets[bucket_hour(hour)] += 1

    signals.wifi_avg = mean(signals.wifi_values)
    signals.noise_avg = mean(signals.noise_values)
    signals.busyness_avg = mean(signals.busyness_values)
    signals.outlet_avg = mean(outlet_scores)
    signals.drink_quality_avg = mean(drink_quality)
    signals.drink_price_avg = mean(drink_price)
    if signals.laptop_votes:
        signals.laptop_pct = sum(signals.laptop_votes) / len(signals.laptop_votes) * 100

    signals.ambiance_counts = dict(ambiance)
    signals.intent_counts = dict(intents)
    signals.photo_tag_counts = dict(photos.most_common(TOP_PHOTO_TAGS))
    signals.top_ambiance = ambiance.most_common(1)[0][0] if ambiance else None
    signals.top_outlet = outlets.most_common(1)[0][0] if outlets else None
    signals.time_bucket_counts = dict(buckets)

    logger.debug(
        f"Extracted signals from {signals.sample_size} reports "
        f"(wifi={len(signals.wifi_values)}, noise={len(signals.noise_values)}, "
        f"busyness={len(signals.busyness_values)}, laptop={len(signals.laptop_votes)})"
    )
    return signals
