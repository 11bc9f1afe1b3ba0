from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Cache windows
    INTELLIGENCE_TTL_SECONDS: int = 900  # 15 minutes
    EXTERNAL_SIGNAL_TTL_SECONDS: int = 900
    CONTEXT_SIGNAL_TTL_SECONDS: int = 1800  # 30 minutes
    CACHE_MAX_ENTRIES: int = 5000

    # Rating proxy (explicit URL wins over the project/region derived one)
    RATING_PROXY_URL: Optional[str] = None
    FUNCTIONS_PROJECT_ID: Optional[str] = None
    FUNCTIONS_REGION: str = "us-central1"
    RATING_PROXY_TIMEOUT_SECONDS: float = 2.4
    APP_INTEGRITY_HEADER: str = "X-Firebase-AppCheck"
    APP_INTEGRITY_TOKEN: Optional[str] = None

    # Weather context (feature flagged)
    CONTEXT_SIGNALS_ENABLED: bool = False
    WEATHER_API_URL: str = "https://api.open-meteo.com/v1/forecast"
    WEATHER_TIMEOUT_SECONDS: float = 2.0

    # Telemetry sampling
    TELEMETRY_ENABLED: bool = True
    TELEMETRY_SAMPLE_RATE: float = 0.05
    TELEMETRY_MAX_PER_VENUE_PER_HOUR: int = 2
    TELEMETRY_MAX_PER_MINUTE: int = 30
    TELEMETRY_STREAM: str = "place_intel:snapshots"
    TELEMETRY_STREAM_MAXLEN: int = 50000

    # Redis (optional - telemetry falls back to a no-op sink without it)
    REDIS_URL: Optional[str] = None

    # Engine
    DEFAULT_TIMEZONE: str = "UTC"
    MODEL_VERSION: str = "place-intel-v3.1"
    REPORT_WINDOW_LIMIT: int = 200

    # Circuit breakers
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_SECONDS: float = 30.0

    # Service host
    LOG_LEVEL: str = "INFO"

    # CORS - Stored as string, parsed via get_cors_origins() method
    CORS_ORIGINS: Optional[str] = None

    def get_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string or JSON array"""
        if not self.CORS_ORIGINS:
            return []
        v = self.CORS_ORIGINS.strip()
        if not v:
            return []
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    def get_rating_proxy_endpoint(self) -> str:
        """Explicit proxy URL, else the cloud-functions URL derived from project and region."""
        if self.RATING_PROXY_URL:
            return self.RATING_PROXY_URL
        if not self.FUNCTIONS_PROJECT_ID:
            return ""
        return (
            f"https://{self.FUNCTIONS_REGION}-{self.FUNCTIONS_PROJECT_ID}"
            ".cloudfunctions.net/placeSignalsProxy"
        )

    @field_validator("RATING_PROXY_URL", "WEATHER_API_URL")
    @classmethod
    def clean_url(cls, v: Optional[str]) -> Optional[str]:
        """Strip whitespace and trailing slashes; blank means unset."""
        if v is None:
            return None
        v = v.strip().rstrip("/")
        return v or None

    @field_validator("TELEMETRY_SAMPLE_RATE")
    @classmethod
    def clamp_sample_rate(cls, v: float) -> float:
        return max(0.0, min(1.0, v))

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Singleton instance for direct imports
settings = get_settings()
