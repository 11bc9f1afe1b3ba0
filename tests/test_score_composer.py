"""
Unit tests for work score composition and vibe classification
"""
from datetime import timezone

import pytest

from place_intel.collectors.signal_extractor import ExtractedSignals, extract_signals
from place_intel.models.intelligence import (
    BestTime,
    CrowdLevel,
    Momentum,
    Provenance,
    Trend,
    VibeScores,
    VibeType,
)
from place_intel.models.signals import ContextSignal, ExternalRatingSignal
from place_intel.services.inference_fallback import resolve_metrics
from place_intel.services.score_composer import (
    FACTOR_NAMES,
    NOT_SUITABLE_HIGHLIGHT,
    ScoreComposer,
    VenueClass,
    classify_venue,
    derive_best_time,
    derive_crowd_level,
    derive_use_cases,
)
from place_intel.services.vibe_classifier import VibeInputs, compute_vibe_scores, get_primary_vibe


def compose(composer, text="", signals=None, tag_scores=None, external=(), stored_rating=None,
            context=(), open_now=None, momentum=None):
    signals = signals or ExtractedSignals()
    return composer.compose(
        classification_text=text,
        signals=signals,
        resolved=resolve_metrics(signals, None),
        tag_scores=tag_scores or {},
        external_signals=list(external),
        stored_rating=stored_rating,
        context_signals=list(context),
        open_now=open_now,
        open_now_provenance=Provenance.OBSERVED if open_now is not None else Provenance.NONE,
        momentum=momentum or Momentum(),
    )


@pytest.fixture
def composer():
    return ScoreComposer()


class TestClassifyVenue:
    @pytest.mark.parametrize("text,expected", [
        ("Central Library library", VenueClass.WORKSPACE),
        ("WeWork coworking_space", VenueClass.WORKSPACE),
        ("Blue Bottle cafe food", VenueClass.CAFE),
        ("Corner Shop coffee_shop", VenueClass.CAFE),
        ("Grand Hotel lodging", VenueClass.MIXED),
        ("Zilker Park park", VenueClass.OUTDOOR),
        ("Garage parking", VenueClass.OTHER),
        ("", VenueClass.OTHER),
    ])
    def test_classification(self, text, expected):
        assert classify_venue(text) == expected


class TestScoreComposer:
    """Tests for ScoreComposer.compose"""

    def test_hard_stop_for_unreviewed_outdoor_venue(self, composer):
        composed = compose(composer, text="Riverside Park park tourist_attraction")

        assert composed.hard_stop is True
        assert composed.work_score == 0
        assert composed.venue_class == VenueClass.OUTDOOR
        assert set(composed.breakdown) == set(FACTOR_NAMES)
        assert all(factor.points == 0 for factor in composed.breakdown.values())
        assert composed.breakdown["connectivity"].provenance == Provenance.NONE

    def test_outdoor_venue_with_seating_tag_is_scored(self, composer):
        composed = compose(composer, text="Riverside Park park", tag_scores={"Seating": 2})

        assert composed.hard_stop is False
        assert composed.work_score > 0

    def test_floor_applies_when_raw_sum_not_positive(self, composer):
        composed = compose(composer, text="Corner Pub bar")

        # baseline 6 - nightlife 8 = -2, floored for the OTHER class
        assert composed.breakdown["nightlife_penalty"].points == -8
        assert composed.work_score == ScoreComposer.FLOORS[VenueClass.OTHER]

    def test_breakdown_is_auditable(self, composer, make_report):
        reports = [
            make_report(wifi_speed=4, noise_level=2, busyness=2, laptop_friendly=True, outlet_availability="some")
            for _ in range(5)
        ]
        composed = compose(
            composer,
            text="Daily Grind cafe",
            signals=extract_signals(reports, timezone.utc),
            external=[ExternalRatingSignal(source="yelp", rating=4.5, review_count=40)],
            open_now=False,
        )

        # 16 + 19.2 + 14 + 7.5 + 12 + 10.5 + 12.6 - 4
        total = sum(factor.points for factor in composed.breakdown.values())
        assert total == pytest.approx(87.8)
        assert composed.work_score == 88
        assert composed.breakdown["connectivity"].provenance == Provenance.OBSERVED
        assert composed.breakdown["external_rating"].provenance == Provenance.API
        assert composed.breakdown["momentum"].provenance == Provenance.NONE
        assert composed.breakdown["open_now"].points == -4

    def test_absent_factors_contribute_zero(self, composer):
        composed = compose(composer, text="Some Place")

        for name in ("connectivity", "laptop", "noise", "crowd", "external_rating"):
            assert composed.breakdown[name].points == 0
            assert composed.breakdown[name].provenance == Provenance.NONE

    def test_off_scale_metrics_cannot_inflate_score(self, composer, make_report):
        reports = [make_report(wifi_speed=50, noise_level=-10) for _ in range(5)]
        composed = compose(composer, text="Daily Grind cafe", signals=extract_signals(reports, timezone.utc))

        assert composed.breakdown["connectivity"].points == 0
        assert composed.breakdown["connectivity"].provenance == Provenance.NONE
        assert composed.breakdown["noise"].provenance == Provenance.NONE
        assert composed.work_score <= 100

    def test_stored_rating_backs_external_factor(self, composer):
        composed = compose(composer, text="Some Place", stored_rating=5.0)

        assert composed.breakdown["external_rating"].points == 14
        assert composed.breakdown["external_rating"].provenance == Provenance.API

    def test_rain_raises_effective_crowd(self, composer, make_report):
        signals = extract_signals([make_report(busyness=2)], timezone.utc)
        dry = compose(composer, text="x", signals=signals)
        rainy = compose(
            composer,
            text="x",
            signals=signals,
            context=[ContextSignal(condition="rain", crowd_impact="increase", confidence=0.8)],
        )

        assert dry.breakdown["crowd"].raw_value == 2.0
        assert rainy.breakdown["crowd"].raw_value == pytest.approx(2.4)
        assert rainy.breakdown["crowd"].points < dry.breakdown["crowd"].points

    def test_momentum_adjustment(self, composer):
        composed = compose(
            composer,
            text="x",
            momentum=Momentum(trend=Trend.IMPROVING, delta=12),
        )
        assert composed.breakdown["momentum"].points == 6
        assert composed.breakdown["momentum"].provenance == Provenance.OBSERVED

    def test_score_is_clamped(self, composer, make_report):
        reports = [
            make_report(wifi_speed=5, noise_level=1, busyness=1, laptop_friendly=True, outlet_availability="plenty")
            for _ in range(30)
        ]
        composed = compose(
            composer,
            text="University Library study",
            signals=extract_signals(reports, timezone.utc),
            tag_scores={"Wi-Fi": 50, "Outlets": 50, "Seating": 50, "Quiet": 50},
            external=[ExternalRatingSignal(source="google", rating=5.0)],
            open_now=True,
            momentum=Momentum(trend=Trend.IMPROVING, delta=20),
        )
        assert composed.work_score == 100


class TestDerivations:
    @pytest.mark.parametrize("busyness,level", [
        (None, CrowdLevel.UNKNOWN), (1.0, CrowdLevel.LOW), (2.1, CrowdLevel.LOW),
        (3.0, CrowdLevel.MODERATE), (3.8, CrowdLevel.HIGH),
    ])
    def test_crowd_level(self, busyness, level):
        assert derive_crowd_level(busyness) == level

    def test_best_time(self):
        assert derive_best_time({}) == BestTime.ANYTIME
        assert derive_best_time({"evening": 3, "morning": 2}) == BestTime.EVENING
        assert derive_best_time({"afternoon": 2, "morning": 2}) == BestTime.MORNING

    def test_use_cases_capped_and_ordered(self):
        use_cases = derive_use_cases(
            work_score=85,
            crowd_level=CrowdLevel.MODERATE,
            best_time=BestTime.LATE,
            open_now=True,
            external_signals=[ExternalRatingSignal(source="yelp", rating=4.8)],
            wifi=4.5,
            laptop_pct=90,
        )
        assert use_cases == ["Deep work", "Laptop sessions", "Group study"]

    def test_use_case_fallback(self):
        use_cases = derive_use_cases(
            work_score=30,
            crowd_level=CrowdLevel.UNKNOWN,
            best_time=BestTime.ANYTIME,
            open_now=None,
            external_signals=[],
            wifi=None,
            laptop_pct=None,
        )
        assert use_cases == ["Quick focus stop"]

    def test_not_suitable_highlight_text(self):
        assert NOT_SUITABLE_HIGHLIGHT == "Not suitable for focused work"


class TestVibeClassifier:
    """Tests for compute_vibe_scores and get_primary_vibe"""

    def test_neutral_inputs(self):
        scores = compute_vibe_scores(VibeInputs())

        assert scores.study == 51
        assert scores.date == 43
        assert scores.social == 40
        for value in scores.model_dump().values():
            assert 0 <= value <= 100

    def test_study_signals_raise_study_score(self):
        neutral = compute_vibe_scores(VibeInputs())
        studious = compute_vibe_scores(VibeInputs(
            wifi=5, noise=1, busyness=1, laptop_pct=100, top_outlet="plenty",
            intent_counts={"deep_work": 4}, tag_scores={"Study": 5, "Quiet": 5},
        ))
        assert studious.study > neutral.study
        assert studious.study == 100

    def test_primary_vibe_demotes_early_social_when_closed(self):
        scores = VibeScores(study=10, date=20, social=90, quick=30, aesthetic=40)

        assert get_primary_vibe(scores, hour=8, open_now=False) == VibeType.QUICK
        assert get_primary_vibe(scores, hour=8, open_now=True) == VibeType.SOCIAL
        assert get_primary_vibe(scores, hour=12, open_now=False) == VibeType.SOCIAL

    def test_primary_vibe_ties_go_to_earlier_dimension(self):
        scores = VibeScores(study=60, date=60, social=10, quick=10, aesthetic=10)
        assert get_primary_vibe(scores, hour=12) == VibeType.STUDY
