"""
Current-weather context for a venue's coordinates (Open-Meteo compatible API).

Disabled unless CONTEXT_SIGNALS_ENABLED is set. Like the rating proxy, any
failure yields an empty list.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import httpx

from place_intel.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    weather_circuit_breaker,
)
from place_intel.core.config import settings
from place_intel.core.exceptions import (
    MalformedResponseError,
    PlaceIntelError,
    UpstreamUnavailableError,
)
from place_intel.core.metrics import metrics
from place_intel.models.signals import ContextSignal, Coordinates, CrowdImpact, WeatherCondition

logger = logging.getLogger(__name__)

SERVICE_NAME = "weather"

# WMO weather interpretation codes
SNOW_CODES = frozenset(range(71, 78)) | {85, 86}
RAIN_CODES = frozenset(range(51, 68)) | frozenset(range(80, 83)) | frozenset(range(95, 100))
CLEAR_CODES = frozenset({0, 1})
CLOUDY_CODES = frozenset({2, 3, 45, 48})

RAIN_PRECIPITATION_MM = 0.2


def context_cache_key(location: Coordinates) -> Tuple[str, str]:
    """Coordinates rounded to ~1km; weather does not vary below that."""
    return (f"{location.lat:.2f}", f"{location.lng:.2f}")


def classify_weather(code: Optional[int], precipitation: Optional[float]) -> WeatherCondition:
    if code in SNOW_CODES:
        return WeatherCondition.SNOW
    if code in RAIN_CODES or (precipitation or 0.0) >= RAIN_PRECIPITATION_MM:
        return WeatherCondition.RAIN
    if code in CLEAR_CODES:
        return WeatherCondition.CLEAR
    if code in CLOUDY_CODES:
        return WeatherCondition.CLOUDY
    return WeatherCondition.UNKNOWN


def crowd_impact_for(condition: WeatherCondition) -> CrowdImpact:
    """Bad weather pushes people indoors; clear skies pull them out."""
    if condition in (WeatherCondition.RAIN, WeatherCondition.SNOW):
        return CrowdImpact.INCREASE
    if condition == WeatherCondition.CLEAR:
        return CrowdImpact.DECREASE
    return CrowdImpact.NEUTRAL


def weather_confidence(condition: WeatherCondition, precipitation: Optional[float]) -> float:
    if condition == WeatherCondition.SNOW:
        return 0.8
    if condition == WeatherCondition.RAIN:
        return round(0.55 + min(0.35, max(0.0, precipitation or 0.0) * 0.1), 3)
    if condition == WeatherCondition.CLEAR:
        return 0.5
    if condition == WeatherCondition.CLOUDY:
        return 0.4
    return 0.2


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def parse_current_weather(payload: Any) -> ContextSignal:
    if not isinstance(payload, dict) or not isinstance(payload.get("current"), dict):
        raise MalformedResponseError(SERVICE_NAME, "missing 'current' block")

    current: Dict[str, Any] = payload["current"]
    code_value = _number(current.get("weather_code"))
    code = int(code_value) if code_value is not None else None
    precipitation = _number(current.get("precipitation"))
    condition = classify_weather(code, precipitation)

    return ContextSignal(
        condition=condition,
        crowd_impact=crowd_impact_for(condition),
        confidence=weather_confidence(condition, precipitation),
        temperature_c=_number(current.get("temperature_2m")),
        precipitation_mm=precipitation,
        weather_code=code,
    )


class WeatherGateway:
    """Client for the weather provider's current-conditions endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        enabled: Optional[bool] = None,
        timeout: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url or settings.WEATHER_API_URL
        self.enabled = settings.CONTEXT_SIGNALS_ENABLED if enabled is None else enabled
        self.timeout = timeout if timeout is not None else settings.WEATHER_TIMEOUT_SECONDS
        self.breaker = breaker or weather_circuit_breaker
        self._http_client = http_client
        self._owns_client = http_client is None
        self._consecutive_failures = 0

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(self, location: Coordinates) -> ContextSignal:
        params = {
            "latitude": location.lat,
            "longitude": location.lng,
            "current": "weather_code,precipitation,temperature_2m",
        }
        async with self.breaker:
            client = await self._get_http_client()
            try:
                response = await client.get(self.base_url, params=params, timeout=self.timeout)
            except httpx.TimeoutException as e:
                raise UpstreamUnavailableError(SERVICE_NAME, f"timed out after {self.timeout}s") from e
            except httpx.HTTPError as e:
                raise UpstreamUnavailableError(SERVICE_NAME, str(e) or type(e).__name__) from e

            if response.status_code != 200:
                raise UpstreamUnavailableError(
                    SERVICE_NAME, f"HTTP {response.status_code}", status_code=response.status_code
                )
            try:
                payload = response.json()
            except ValueError as e:
                raise MalformedResponseError(SERVICE_NAME, "body is not JSON") from e
            return parse_current_weather(payload)

    async def fetch_context(self, location: Optional[Coordinates]) -> List[ContextSignal]:
        """
        Zero or one ContextSignal for the coordinates.
        """
        if not self.enabled or location is None or not self.base_url:
            return []

        try:
            signal = await self._request(location)
        except CircuitBreakerError as e:
            metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="circuit_open").inc()
            logger.debug(f"Skipping weather lookup: {e.message}")
            return []
        except PlaceIntelError as e:
            outcome = "malformed" if isinstance(e, MalformedResponseError) else "error"
            metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome=outcome).inc()
            metrics.errors_total.labels(component=SERVICE_NAME, error_type=e.error_code).inc()
            self._consecutive_failures += 1
            if self._consecutive_failures == 1:
                logger.warning(f"Weather lookup failed: {e.message}")
            else:
                logger.debug(f"Weather lookup failed: {e.message}")
            return []
        except Exception as e:
            metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="malformed").inc()
            metrics.errors_total.labels(component=SERVICE_NAME, error_type=type(e).__name__).inc()
            logger.warning(f"Unexpected weather payload: {type(e).__name__}: {e}")
            return []

        self._consecutive_failures = 0
        metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="success").inc()
        return [signal]
