"""
Result models for the place intelligence engine

PlaceIntelligenceResult is the engine's only output. Every bounded field
declares its range here, and the builders clamp before constructing, so a
value outside its range is a bug that fails validation loudly.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .signals import ContextSignal, ExternalRatingSignal


class Provenance(str, Enum):
    """Which source backs a score factor"""
    OBSERVED = "observed"  # visit reports
    INFERRED = "inferred"  # review NLP
    API = "api"  # third-party rating data
    NONE = "none"


class CrowdLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    UNKNOWN = "unknown"


class BestTime(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    LATE = "late"
    ANYTIME = "anytime"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class VibeType(str, Enum):
    STUDY = "study"
    DATE = "date"
    SOCIAL = "social"
    QUICK = "quick"
    AESTHETIC = "aesthetic"


class FactorScore(BaseModel):
    """One additive term of the work score, tagged with where it came from"""
    points: float
    provenance: Provenance = Provenance.NONE
    raw_value: Optional[float] = None


class Reliability(BaseModel):
    sample_size: int = Field(0, ge=0)
    data_coverage: float = Field(0.0, ge=0, le=1)
    variance_penalty: float = Field(1.0, ge=0, le=1)
    score: float = Field(0.1, ge=0, le=1)


class Momentum(BaseModel):
    trend: Trend = Trend.INSUFFICIENT_DATA
    delta: float = Field(0.0, ge=-20, le=20)
    metric_deltas: Dict[str, float] = Field(
        default_factory=lambda: {"wifi": 0.0, "busyness": 0.0, "noise": 0.0, "laptop_pct": 0.0}
    )


class ExternalSignalMeta(BaseModel):
    provider_count: int = Field(0, ge=0)
    provider_diversity: float = Field(0.0, ge=0, le=1)
    review_count: int = Field(0, ge=0)
    rating_consensus: float = Field(0.0, ge=0, le=1)
    trust_score: float = Field(0.0, ge=0, le=1)


class CrowdForecastPoint(BaseModel):
    offset_hours: int = Field(..., ge=0, le=5)
    label: str
    local_hour_label: str
    level: CrowdLevel
    score: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)


class VibeScores(BaseModel):
    study: int = Field(0, ge=0, le=100)
    date: int = Field(0, ge=0, le=100)
    social: int = Field(0, ge=0, le=100)
    quick: int = Field(0, ge=0, le=100)
    aesthetic: int = Field(0, ge=0, le=100)


class PlaceIntelligenceResult(BaseModel):
    work_score: int = Field(..., ge=0, le=100)
    vibe_scores: VibeScores = Field(default_factory=VibeScores)
    primary_vibe: VibeType = VibeType.STUDY
    score_breakdown: Dict[str, FactorScore] = Field(default_factory=dict)
    crowd_level: CrowdLevel = CrowdLevel.UNKNOWN
    best_time: BestTime = BestTime.ANYTIME
    confidence: float = Field(..., ge=0, le=1)
    reliability: Reliability = Field(default_factory=Reliability)
    momentum: Momentum = Field(default_factory=Momentum)
    highlights: List[str] = Field(default_factory=list, max_length=4)
    use_cases: List[str] = Field(default_factory=list, max_length=3)
    external_signals: List[ExternalRatingSignal] = Field(default_factory=list)
    external_signal_meta: ExternalSignalMeta = Field(default_factory=ExternalSignalMeta)
    context_signals: List[ContextSignal] = Field(default_factory=list)
    crowd_forecast: List[CrowdForecastPoint] = Field(default_factory=list)
    model_version: str
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
