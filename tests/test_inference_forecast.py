"""
Unit tests for inference fallback and the crowd forecast
"""
from datetime import timezone

import pytest

from place_intel.collectors.signal_extractor import ExtractedSignals, HourlyBucket, extract_signals
from place_intel.models.intelligence import CrowdLevel, Provenance
from place_intel.models.signals import InferredReviewSignal
from place_intel.services.inference_fallback import resolve_metrics
from place_intel.utils.forecast import build_crowd_forecast, to_12_hour_label


class TestInferenceFallback:
    """Tests for resolve_metrics"""

    def test_observed_values_win(self, make_report):
        signals = extract_signals([make_report(wifi_speed=2, noise_level=4, laptop_friendly=False)], timezone.utc)
        inferred = InferredReviewSignal(has_wifi=True, wifi_confidence=1.0, inferred_noise="quiet",
                                        inferred_noise_confidence=1.0, good_for_studying=True)
        resolved = resolve_metrics(signals, inferred)

        assert resolved.wifi.value == 2.0
        assert resolved.wifi.provenance == Provenance.OBSERVED
        assert resolved.noise.provenance == Provenance.OBSERVED
        assert resolved.laptop_pct.value == 0.0

    def test_inferred_values_blend_midpoint_toward_extreme(self):
        inferred = InferredReviewSignal(
            has_wifi=True,
            wifi_confidence=0.5,
            inferred_noise="quiet",
            inferred_noise_confidence=0.8,
            good_for_studying=True,
        )
        resolved = resolve_metrics(ExtractedSignals(), inferred)

        assert resolved.wifi.value == pytest.approx(4.0)
        assert resolved.wifi.provenance == Provenance.INFERRED
        assert resolved.noise.value == pytest.approx(1.4)
        assert resolved.noise.provenance == Provenance.INFERRED
        assert resolved.laptop_pct.value == pytest.approx(82.5)

    def test_zero_confidence_stays_at_midpoint(self):
        inferred = InferredReviewSignal(has_wifi=True, wifi_confidence=0.0, inferred_noise="loud")
        resolved = resolve_metrics(ExtractedSignals(), inferred)

        assert resolved.wifi.value == 3.0
        assert resolved.noise.value == 3.0

    def test_absent_without_applicable_flag(self):
        inferred = InferredReviewSignal(has_wifi=False, wifi_confidence=0.9, good_for_studying=False)
        resolved = resolve_metrics(ExtractedSignals(), inferred)

        assert resolved.wifi.value is None
        assert resolved.wifi.provenance == Provenance.NONE
        assert resolved.noise.provenance == Provenance.NONE
        assert resolved.laptop_pct.provenance == Provenance.NONE

    def test_absent_without_inference(self):
        resolved = resolve_metrics(ExtractedSignals(), None)
        assert not resolved.wifi.present
        assert not resolved.noise.present
        assert not resolved.laptop_pct.present


class TestCrowdForecast:
    """Tests for build_crowd_forecast"""

    def test_six_points_with_labels(self):
        hourly = {14: HourlyBucket(count=4, busyness_sum=8, busyness_count=4)}
        points = build_crowd_forecast(hourly, 2.0, current_hour=14, base_confidence=0.5)

        assert len(points) == 6
        assert [p.label for p in points] == ["Now", "+1h", "+2h", "+3h", "+4h", "+5h"]
        assert [p.local_hour_label for p in points] == ["2PM", "3PM", "4PM", "5PM", "6PM", "7PM"]

    def test_blend_and_levels(self):
        hourly = {
            14: HourlyBucket(count=10, busyness_sum=50, busyness_count=10),
            15: HourlyBucket(count=2, busyness_sum=2, busyness_count=2),
        }
        points = build_crowd_forecast(hourly, 3.0, current_hour=14, base_confidence=0.5)

        # 0.65 * 1 + 0.35 * 1
        assert points[0].score == 1.0
        assert points[0].level == CrowdLevel.HIGH
        assert points[0].confidence == 0.7
        # 0.65 * 0.2 + 0.35 * 0.2
        assert points[1].score == pytest.approx(0.2)
        assert points[1].level == CrowdLevel.LOW

    def test_hours_without_data_fall_back_to_overall_busyness(self):
        hourly = {9: HourlyBucket(count=3, busyness_sum=12, busyness_count=3)}
        points = build_crowd_forecast(hourly, 4.0, current_hour=20, base_confidence=0.5)

        # no count for these hours, busyness 4 / 5 * 0.35
        assert all(p.score == 0.28 for p in points)
        assert all(p.confidence == 0.3 for p in points)

    def test_no_history_is_unknown(self):
        points = build_crowd_forecast({}, None, current_hour=23, base_confidence=0.1)

        assert all(p.level == CrowdLevel.UNKNOWN for p in points)
        assert all(p.score == 0.0 for p in points)
        assert points[1].local_hour_label == "12AM"

    @pytest.mark.parametrize("hour,label", [(0, "12AM"), (9, "9AM"), (12, "12PM"), (23, "11PM")])
    def test_12_hour_label(self, hour, label):
        assert to_12_hour_label(hour) == label
