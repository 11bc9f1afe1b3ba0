"""
Place intelligence models
"""
from .signals import (
    NOISE_LEVELS,
    CROWD_LEVELS,
    ExternalSource,
    WeatherCondition,
    CrowdImpact,
    Coordinates,
    VisitReport,
    ExternalRatingSignal,
    InferredReviewSignal,
    StoredVenueIntel,
    ContextSignal,
    BuildIntelligenceInput,
)
from .intelligence import (
    Provenance,
    CrowdLevel,
    BestTime,
    Trend,
    VibeType,
    FactorScore,
    Reliability,
    Momentum,
    ExternalSignalMeta,
    CrowdForecastPoint,
    VibeScores,
    PlaceIntelligenceResult,
)

__all__ = [
    # Input signals
    "NOISE_LEVELS",
    "CROWD_LEVELS",
    "ExternalSource",
    "WeatherCondition",
    "CrowdImpact",
    "Coordinates",
    "VisitReport",
    "ExternalRatingSignal",
    "InferredReviewSignal",
    "StoredVenueIntel",
    "ContextSignal",
    "BuildIntelligenceInput",
    # Result
    "Provenance",
    "CrowdLevel",
    "BestTime",
    "Trend",
    "VibeType",
    "FactorScore",
    "Reliability",
    "Momentum",
    "ExternalSignalMeta",
    "CrowdForecastPoint",
    "VibeScores",
    "PlaceIntelligenceResult",
]
