"""
Place intelligence engine

Work score, vibe, crowd and forecast intelligence for venues, built from
visit reports, third-party ratings, review inference and weather context.
"""
from place_intel.models import BuildIntelligenceInput, PlaceIntelligenceResult
from place_intel.services.intelligence_service import (
    PlaceIntelligenceEngine,
    VisitReportSource,
    build_place_intelligence,
    get_intelligence_engine,
    invalidate_place_intelligence_cache,
    set_intelligence_engine,
)

__all__ = [
    "BuildIntelligenceInput",
    "PlaceIntelligenceResult",
    "PlaceIntelligenceEngine",
    "VisitReportSource",
    "build_place_intelligence",
    "get_intelligence_engine",
    "invalidate_place_intelligence_cache",
    "set_intelligence_engine",
]
