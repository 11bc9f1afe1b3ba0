"""
Momentum detection over two adjacent trailing windows of visit reports
"""
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Dict, List, Optional, Sequence

from place_intel.collectors.signal_extractor import mean
from place_intel.models.intelligence import Momentum, Trend
from place_intel.models.signals import VisitReport

logger = logging.getLogger(__name__)


WINDOW = timedelta(days=7)
MIN_TOTAL_REPORTS = 6
MIN_WINDOW_REPORTS = 3

WIFI_WEIGHT = 5.0
BUSYNESS_WEIGHT = -4.0
NOISE_WEIGHT = -4.0
LAPTOP_PCT_WEIGHT = 0.06

MAX_DELTA = 20.0
STABLE_BAND = 4.0


def as_aware(moment: datetime, tz: tzinfo) -> datetime:
    """Attach the venue zone to naive datetimes."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment


def _metric_delta(recent: Optional[float], previous: Optional[float]) -> float:
    if recent is None or previous is None:
        return 0.0
    return recent - previous


def _laptop_pct(reports: Sequence[VisitReport]) -> Optional[float]:
    votes = [r.laptop_friendly for r in reports if r.laptop_friendly is not None]
    if not votes:
        return None
    return sum(votes) / len(votes) * 100


def _window_means(reports: Sequence[VisitReport]) -> Dict[str, Optional[float]]:
    return {
        "wifi": mean([r.wifi_speed for r in reports if r.wifi_speed is not None]),
        "busyness": mean([r.busyness for r in reports if r.busyness is not None]),
        "noise": mean([r.noise_level for r in reports if r.noise_level is not None]),
        "laptop_pct": _laptop_pct(reports),
    }


def compute_momentum(reports: Sequence[VisitReport], now: datetime, tz: tzinfo) -> Momentum:
    """
    Compare the last 7 days of reports against the 7 days before.

    Returns insufficient_data with zero deltas when there are fewer than 6
    reports overall or fewer than 3 in either window.
    """
    if len(reports) < MIN_TOTAL_REPORTS:
        return Momentum()

    now = as_aware(now, tz)
    recent: List[VisitReport] = []
    previous: List[VisitReport] = []
    for report in reports:
        age = now - as_aware(report.created_at, tz)
        if timedelta(0) <= age < WINDOW:
            recent.append(report)
        elif WINDOW <= age < 2 * WINDOW:
            previous.append(report)

    if len(recent) < MIN_WINDOW_REPORTS or len(previous) < MIN_WINDOW_REPORTS:
        return Momentum()

    recent_means = _window_means(recent)
    previous_means = _window_means(previous)
    deltas = {
        name: round(_metric_delta(recent_means[name], previous_means[name]), 2)
        for name in ("wifi", "busyness", "noise", "laptop_pct")
    }

    raw = (
        WIFI_WEIGHT * deltas["wifi"]
        + BUSYNESS_WEIGHT * deltas["busyness"]
        + NOISE_WEIGHT * deltas["noise"]
        + LAPTOP_PCT_WEIGHT * deltas["laptop_pct"]
    )
    delta = round(max(-MAX_DELTA, min(MAX_DELTA, raw)), 2)

    if abs(delta) < STABLE_BAND:
        trend = Trend.STABLE
    elif delta > 0:
        trend = Trend.IMPROVING
    else:
        trend = Trend.DECLINING

    logger.debug(
        f"Momentum {trend.value}: delta={delta} "
        f"(recent={len(recent)}, previous={len(previous)})"
    )
    return Momentum(trend=trend, delta=delta, metric_deltas=deltas)
