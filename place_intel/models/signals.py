"""
Pydantic models for the signals fed into the intelligence engine

Every external shape is validated here, once, so the scoring code works on
known-shape records with nullable fields. Metric fields are lenient: a value
that cannot be read as the expected type becomes None instead of failing
the whole report.
"""
import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


# Fixed categorical -> 1..5 tables. "loud" and "lively" intentionally share 4.
NOISE_LEVELS: Dict[str, float] = {
    "quiet": 2.0,
    "moderate": 3.0,
    "loud": 4.0,
    "lively": 4.0,
}

CROWD_LEVELS: Dict[str, float] = {
    "empty": 1.0,
    "some": 3.0,
    "packed": 5.0,
}

OUTLET_LEVELS = ("plenty", "some", "few", "none")

RATING_SCALE = (1.0, 5.0)
PRICE_SCALE = (1.0, 3.0)


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _scaled(value: Any, scale=RATING_SCALE) -> Optional[float]:
    """A finite number inside scale, else None."""
    number = _finite_number(value)
    if number is None or not scale[0] <= number <= scale[1]:
        return None
    return number


def _ordinal(value: Any, table: Dict[str, float]) -> Optional[float]:
    """Number on the 1..5 scale, or a categorical label mapped through table."""
    if _finite_number(value) is not None:
        return _scaled(value)
    if isinstance(value, str):
        return table.get(value.strip().lower())
    return None


def _from_epoch(seconds: float) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ValueError(f"timestamp out of range: {seconds}") from e


def _clean_tags(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple, set)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class ExternalSource(str, Enum):
    """Third-party providers the rating proxy may answer for"""
    FOURSQUARE = "foursquare"
    YELP = "yelp"
    GOOGLE = "google"


class WeatherCondition(str, Enum):
    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAIN = "rain"
    SNOW = "snow"
    UNKNOWN = "unknown"


class CrowdImpact(str, Enum):
    """Direction weather pushes indoor crowding"""
    INCREASE = "increase"
    DECREASE = "decrease"
    NEUTRAL = "neutral"


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class VisitReport(BaseModel):
    """
    One user-submitted observation of a venue (a check-in).

    Scales: wifi_speed, busyness, drink_quality 1-5; drink_price 1-3;
    noise_level 1-5 or quiet/moderate/loud/lively; busyness may also be
    empty/some/packed; outlet_availability plenty/some/few/none.
    """
    model_config = ConfigDict(frozen=True)

    created_at: datetime
    wifi_speed: Optional[float] = None
    noise_level: Optional[float] = None
    busyness: Optional[float] = None
    outlet_availability: Optional[str] = None
    laptop_friendly: Optional[bool] = None
    drink_quality: Optional[float] = None
    drink_price: Optional[float] = None
    intents: List[str] = Field(default_factory=list)
    ambiance: Optional[str] = None
    photo_tags: List[str] = Field(default_factory=list)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, v: Any) -> Any:
        # Epoch milliseconds, or a {seconds, nanoseconds} timestamp from the document store
        if isinstance(v, dict) and "seconds" in v:
            seconds = _finite_number(v.get("seconds"))
            nanos = _finite_number(v.get("nanoseconds", v.get("nanos", 0))) or 0.0
            if seconds is None:
                raise ValueError("timestamp seconds must be a number")
            return _from_epoch(seconds + nanos / 1e9)
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return _from_epoch(v / 1000.0)
        return v

    @field_validator("wifi_speed", "drink_quality", mode="before")
    @classmethod
    def lenient_rating(cls, v: Any) -> Optional[float]:
        return _scaled(v)

    @field_validator("drink_price", mode="before")
    @classmethod
    def lenient_price(cls, v: Any) -> Optional[float]:
        return _scaled(v, PRICE_SCALE)

    @field_validator("noise_level", mode="before")
    @classmethod
    def parse_noise(cls, v: Any) -> Optional[float]:
        return _ordinal(v, NOISE_LEVELS)

    @field_validator("busyness", mode="before")
    @classmethod
    def parse_busyness(cls, v: Any) -> Optional[float]:
        return _ordinal(v, CROWD_LEVELS)

    @field_validator("outlet_availability", mode="before")
    @classmethod
    def parse_outlets(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str):
            return None
        normalized = v.strip().lower()
        return normalized if normalized in OUTLET_LEVELS else None

    @field_validator("laptop_friendly", mode="before")
    @classmethod
    def strict_bool(cls, v: Any) -> Optional[bool]:
        return v if isinstance(v, bool) else None

    @field_validator("ambiance", mode="before")
    @classmethod
    def parse_ambiance(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip().lower()

    @field_validator("intents", "photo_tags", mode="before")
    @classmethod
    def parse_tags(cls, v: Any) -> List[str]:
        return _clean_tags(v)


class ExternalRatingSignal(BaseModel):
    """One third-party source's view of a venue"""
    model_config = ConfigDict(frozen=True)

    source: ExternalSource
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[str] = None
    categories: Optional[List[str]] = None

    @field_validator("rating", mode="before")
    @classmethod
    def parse_rating(cls, v: Any) -> Optional[float]:
        number = _finite_number(v)
        if number is None:
            return None
        return max(0.0, min(5.0, number))

    @field_validator("review_count", mode="before")
    @classmethod
    def parse_review_count(cls, v: Any) -> Optional[int]:
        number = _finite_number(v)
        return None if number is None or number < 0 else int(number)

    @field_validator("price_level", mode="before")
    @classmethod
    def parse_price_level(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str):
            return None
        return v.strip() or None

    @field_validator("categories", mode="before")
    @classmethod
    def parse_categories(cls, v: Any) -> Optional[List[str]]:
        if not isinstance(v, (list, tuple)):
            return None
        return _clean_tags(v)


class InferredReviewSignal(BaseModel):
    """
    Attributes inferred from review text by the review-analysis function.
    Read-only input; confidences are 0-1.
    """
    inferred_noise: Optional[str] = None  # quiet / moderate / loud
    inferred_noise_confidence: float = Field(0.0, ge=0, le=1)
    has_wifi: bool = False
    wifi_confidence: float = Field(0.0, ge=0, le=1)
    good_for_studying: bool = False
    good_for_dates: Optional[float] = Field(None, ge=0, le=1)
    good_for_groups: Optional[float] = Field(None, ge=0, le=1)
    instagram_worthy: Optional[float] = Field(None, ge=0, le=1)
    food_quality_signal: Optional[float] = Field(None, ge=0, le=1)
    aesthetic_vibe: Optional[str] = None
    music_atmosphere: Optional[str] = None
    seating_comfort: Optional[str] = None

    @field_validator("inferred_noise")
    @classmethod
    def known_noise(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v if v in ("quiet", "moderate", "loud") else None


class StoredVenueIntel(BaseModel):
    """Third-party-derived attributes already stored on the venue document"""
    avg_rating: Optional[float] = Field(None, ge=0, le=5)
    price_level: Optional[str] = None
    category: Optional[str] = None  # cafe / coworking / library / other
    is_open_now: Optional[bool] = None
    review_count: Optional[int] = None


class ContextSignal(BaseModel):
    """A single current-weather observation near the venue"""
    condition: WeatherCondition
    crowd_impact: CrowdImpact
    confidence: float = Field(..., ge=0, le=1)
    temperature_c: Optional[float] = None
    precipitation_mm: Optional[float] = None
    weather_code: Optional[int] = None


class BuildIntelligenceInput(BaseModel):
    """Everything a caller hands to build_place_intelligence()"""
    place_name: str = ""
    place_id: Optional[str] = None
    location: Optional[Coordinates] = None
    open_now: Optional[bool] = None
    types: List[str] = Field(default_factory=list)
    reports: Optional[List[VisitReport]] = None
    tag_scores: Dict[str, float] = Field(default_factory=dict)
    inferred: Optional[InferredReviewSignal] = None
    intel: Optional[StoredVenueIntel] = None
    timezone: Optional[str] = None
    now: Optional[datetime] = None
    user_id: Optional[str] = None

    @field_validator("place_name", mode="before")
    @classmethod
    def clean_name(cls, v: Any) -> str:
        return v.strip() if isinstance(v, str) else ""

    @field_validator("types", mode="before")
    @classmethod
    def clean_types(cls, v: Any) -> List[str]:
        return _clean_tags(v)

    @field_validator("reports", mode="before")
    @classmethod
    def drop_unreadable_reports(cls, v: Any) -> Any:
        # Unreadable check-ins are dropped individually
        if not isinstance(v, (list, tuple)):
            return v
        kept = []
        for item in v:
            if isinstance(item, VisitReport):
                kept.append(item)
                continue
            try:
                kept.append(VisitReport.model_validate(item))
            except ValidationError as e:
                logger.debug(f"Dropping unreadable report: {e.error_count()} error(s)")
        return kept

    @field_validator("tag_scores", mode="before")
    @classmethod
    def clean_tag_scores(cls, v: Any) -> Dict[str, float]:
        if not isinstance(v, dict):
            return {}
        cleaned = {}
        for key, value in v.items():
            number = _finite_number(value)
            if isinstance(key, str) and number is not None:
                cleaned[key] = number
        return cleaned
