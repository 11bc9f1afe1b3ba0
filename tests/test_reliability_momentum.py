"""
Unit tests for reliability scoring, momentum detection and external meta
"""
from datetime import timezone

import pytest

from place_intel.models.intelligence import Trend
from place_intel.models.signals import ExternalRatingSignal
from place_intel.utils.external_meta import compute_external_meta, rating_consensus
from place_intel.utils.momentum import compute_momentum
from place_intel.utils.reliability import compute_reliability, numeric_variance, vote_variance

UTC = timezone.utc


class TestReliability:
    """Tests for compute_reliability"""

    def test_zero_reports(self):
        """Test zero reports gives the fixed low score without dividing by zero"""
        reliability = compute_reliability(0, [], [], [], [], external_trust=0.9)

        assert reliability.sample_size == 0
        assert reliability.score == pytest.approx(0.1)
        assert reliability.data_coverage == 0.0
        assert reliability.variance_penalty == 1.0

    def test_full_agreement_full_coverage(self):
        n = 10
        reliability = compute_reliability(n, [4.0] * n, [2.0] * n, [2.0] * n, [True] * n)

        assert reliability.data_coverage == 1.0
        assert reliability.variance_penalty == 0.0
        # 0.55 * 0.5207 + 0.30 + 0.15
        assert reliability.score == pytest.approx(0.736, abs=0.001)

    def test_more_reports_never_decrease_score_at_constant_variance(self):
        previous = 0.0
        for n in (1, 2, 5, 10, 40, 100, 500):
            wifi = [3.0, 5.0] * (n // 2) + [4.0] * (n % 2)
            reliability = compute_reliability(n, wifi, [3.0] * n, [3.0] * n, [True] * n)
            assert reliability.score >= previous
            previous = reliability.score

    def test_external_trust_is_a_capped_boost(self):
        n = 200
        without = compute_reliability(n, [4.0] * n, [2.0] * n, [2.0] * n, [True] * n)
        with_trust = compute_reliability(n, [4.0] * n, [2.0] * n, [2.0] * n, [True] * n, external_trust=1.0)

        assert with_trust.score > without.score
        assert with_trust.score <= 0.98

    def test_variance_helpers(self):
        assert numeric_variance([]) == 0.5
        assert numeric_variance([4.0]) == 0.0
        assert numeric_variance([1.0, 5.0]) == 1.0
        assert vote_variance([True, False]) == 1.0
        assert vote_variance([True, True]) == 0.0


class TestMomentum:
    """Tests for compute_momentum"""

    def _reports(self, make_report, days_ago, **fields):
        return [make_report(hours_ago=d * 24, **fields) for d in days_ago]

    def test_fewer_than_six_reports_is_insufficient(self, make_report, fixed_now):
        reports = self._reports(make_report, [1, 2, 8, 9, 10], wifi_speed=5)
        momentum = compute_momentum(reports, fixed_now, UTC)

        assert momentum.trend == Trend.INSUFFICIENT_DATA
        assert momentum.delta == 0
        assert set(momentum.metric_deltas.values()) == {0.0}

    def test_thin_window_is_insufficient(self, make_report, fixed_now):
        """Test six reports with only two in the previous window"""
        reports = self._reports(make_report, [1, 2, 3, 4, 8, 9], wifi_speed=4)
        momentum = compute_momentum(reports, fixed_now, UTC)

        assert momentum.trend == Trend.INSUFFICIENT_DATA
        assert momentum.delta == 0

    def test_improving(self, make_report, fixed_now):
        recent = self._reports(make_report, [1, 2, 3], wifi_speed=5, busyness=2, noise_level=2)
        previous = self._reports(make_report, [8, 9, 10], wifi_speed=3, busyness=4, noise_level=3)
        momentum = compute_momentum(recent + previous, fixed_now, UTC)

        # 5*2 - 4*(-2) - 4*(-1) = 22, clamped
        assert momentum.trend == Trend.IMPROVING
        assert momentum.delta == 20
        assert momentum.metric_deltas["wifi"] == 2.0
        assert momentum.metric_deltas["busyness"] == -2.0

    def test_declining(self, make_report, fixed_now):
        recent = self._reports(make_report, [1, 2, 3], wifi_speed=3)
        previous = self._reports(make_report, [8, 9, 10], wifi_speed=4)
        momentum = compute_momentum(recent + previous, fixed_now, UTC)

        assert momentum.trend == Trend.DECLINING
        assert momentum.delta == -5

    def test_laptop_rate_drift_weighs_least(self, make_report, fixed_now):
        recent = self._reports(make_report, [1, 2, 3], laptop_friendly=True)
        previous = self._reports(make_report, [8, 9, 10], laptop_friendly=False)
        momentum = compute_momentum(recent + previous, fixed_now, UTC)

        # A full 100-point swing in laptop rate is worth 6
        assert momentum.trend == Trend.IMPROVING
        assert momentum.delta == 6

    def test_small_change_is_stable(self, make_report, fixed_now):
        recent = self._reports(make_report, [1, 2, 3], wifi_speed=4.5)
        previous = self._reports(make_report, [8, 9, 10], wifi_speed=4.0)
        momentum = compute_momentum(recent + previous, fixed_now, UTC)

        assert momentum.trend == Trend.STABLE
        assert momentum.delta == 2.5

    def test_reports_older_than_two_windows_are_ignored(self, make_report, fixed_now):
        recent = self._reports(make_report, [1, 2, 3], wifi_speed=4)
        stale = self._reports(make_report, [20, 21, 22], wifi_speed=1)
        momentum = compute_momentum(recent + stale, fixed_now, UTC)

        assert momentum.trend == Trend.INSUFFICIENT_DATA


class TestExternalMeta:
    """Tests for compute_external_meta"""

    def test_no_signals(self):
        meta = compute_external_meta([])
        assert meta.provider_count == 0
        assert meta.trust_score == 0.0
        assert meta.rating_consensus == 0.0

    def test_single_rating_consensus_is_exactly_point_six(self):
        meta = compute_external_meta([ExternalRatingSignal(source="yelp", rating=4.6, review_count=120)])
        assert meta.rating_consensus == 0.6
        assert meta.provider_count == 1
        assert meta.provider_diversity == 0.5

    def test_ratings_two_and_a_half_apart_have_no_consensus(self):
        assert rating_consensus([5.0, 2.5]) == 0.0
        assert rating_consensus([5.0, 1.0]) == 0.0

    def test_all_fields_bounded(self):
        signals = [
            ExternalRatingSignal(source="yelp", rating=4.5, review_count=5000),
            ExternalRatingSignal(source="foursquare", rating=4.4, review_count=800),
            ExternalRatingSignal(source="google", rating=4.6, review_count=12000),
        ]
        meta = compute_external_meta(signals)

        for value in (meta.provider_diversity, meta.rating_consensus, meta.trust_score):
            assert 0.0 <= value <= 1.0
        assert meta.provider_count == 3
        assert meta.review_count == 17800
