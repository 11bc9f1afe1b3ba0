"""
Rating proxy integration for third-party venue signals.

The proxy is a backend function that holds the provider credentials and
answers with Yelp / Foursquare / Google ratings for a venue. We authenticate
with a bearer id token and, when available, an app-integrity token.

Every failure mode (missing endpoint, network, timeout, non-2xx, bad JSON,
open circuit) ends in an empty signal list. Nothing raises to the caller.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
from pydantic import ValidationError

from place_intel.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    rating_proxy_circuit_breaker,
)
from place_intel.core.config import settings
from place_intel.core.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    PlaceIntelError,
    UpstreamUnavailableError,
)
from place_intel.core.metrics import metrics
from place_intel.models.signals import Coordinates, ExternalRatingSignal, ExternalSource

logger = logging.getLogger(__name__)

SERVICE_NAME = "rating_proxy"

_KNOWN_SOURCES = {source.value for source in ExternalSource}


class TokenProvider(Protocol):
    """Supplies a short-lived credential, or None when there is none."""

    async def get_token(self) -> Optional[str]:
        ...


def external_cache_key(
    place_name: str,
    place_id: Optional[str],
    location: Coordinates,
) -> Tuple[str, str, str, str]:
    """Venue identity plus coordinates rounded to ~100m."""
    return (place_id or "", place_name, f"{location.lat:.3f}", f"{location.lng:.3f}")


def normalize_external_signals(payload: Any) -> List[ExternalRatingSignal]:
    """
    Validate the proxy's externalSignals array.

    Unknown sources and entries that fail validation are dropped one by one;
    a payload that is not a list at all is a malformed response.
    """
    if not isinstance(payload, list):
        raise MalformedResponseError(SERVICE_NAME, "externalSignals is not a list")

    signals = []
    for item in payload:
        if not isinstance(item, dict) or item.get("source") not in _KNOWN_SOURCES:
            continue
        try:
            signals.append(ExternalRatingSignal.model_validate({
                "source": item["source"],
                "rating": item.get("rating"),
                "review_count": item.get("reviewCount"),
                "price_level": item.get("priceLevel"),
                "categories": item.get("categories"),
            }))
        except ValidationError as e:
            logger.debug(f"Dropping external signal from {item.get('source')}: {e}")
    return signals


class RatingProxyGateway:
    """
    Client for the placeSignalsProxy function.

    Caching and in-flight sharing happen one level up, in the engine's
    external-signal cache space; this class makes exactly one request per
    fetch_signals() call.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        id_token_provider: Optional[TokenProvider] = None,
        integrity_token_provider: Optional[TokenProvider] = None,
        timeout: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.get_rating_proxy_endpoint()
        self.timeout = timeout if timeout is not None else settings.RATING_PROXY_TIMEOUT_SECONDS
        self.id_token_provider = id_token_provider
        self.integrity_token_provider = integrity_token_provider
        self.breaker = breaker or rating_proxy_circuit_breaker
        self._http_client = http_client
        self._owns_client = http_client is None
        self._consecutive_failures = 0

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with connection pooling."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_connections=20),
            )
            self._owns_client = True
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _safe_token(self, provider: Optional[TokenProvider], kind: str) -> Optional[str]:
        if provider is None:
            return None
        try:
            return await provider.get_token()
        except Exception as e:
            # Proceed unauthenticated; the proxy decides whether that is enough
            logger.debug(f"Could not obtain {kind} token: {e}")
            return None

    async def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        id_token = await self._safe_token(self.id_token_provider, "id")
        if id_token:
            headers["Authorization"] = f"Bearer {id_token}"

        integrity_token = (
            await self._safe_token(self.integrity_token_provider, "integrity")
            or settings.APP_INTEGRITY_TOKEN
        )
        if integrity_token:
            headers[settings.APP_INTEGRITY_HEADER] = integrity_token
        return headers

    async def _request(
        self,
        place_name: str,
        place_id: Optional[str],
        location: Coordinates,
    ) -> List[ExternalRatingSignal]:
        if not self.endpoint:
            raise ConfigurationError("RATING_PROXY_URL")

        body: Dict[str, Any] = {
            "placeName": place_name,
            "location": {"lat": location.lat, "lng": location.lng},
        }
        if place_id:
            body["placeId"] = place_id

        headers = await self._build_headers()

        async with self.breaker:
            client = await self._get_http_client()
            try:
                response = await client.post(
                    self.endpoint, json=body, headers=headers, timeout=self.timeout
                )
            except httpx.TimeoutException as e:
                raise UpstreamUnavailableError(SERVICE_NAME, f"timed out after {self.timeout}s") from e
            except httpx.HTTPError as e:
                raise UpstreamUnavailableError(SERVICE_NAME, str(e) or type(e).__name__) from e

            if response.status_code != 200:
                raise UpstreamUnavailableError(
                    SERVICE_NAME,
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise MalformedResponseError(SERVICE_NAME, "body is not JSON") from e

            if not isinstance(payload, dict):
                raise MalformedResponseError(SERVICE_NAME, "body is not an object")
            return normalize_external_signals(payload.get("externalSignals"))

    async def fetch_signals(
        self,
        place_name: str,
        place_id: Optional[str],
        location: Optional[Coordinates],
    ) -> List[ExternalRatingSignal]:
        """
        Fetch third-party signals for a venue.

        Returns:
            Validated signals; empty on any failure or when the venue has no
            name or coordinates, or no endpoint is configured
        """
        if not place_name or location is None:
            metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="skipped").inc()
            return []

        try:
            signals = await self._request(place_name, place_id, location)
        except CircuitBreakerError as e:
            metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="circuit_open").inc()
            logger.debug(f"Skipping rating proxy for '{place_name}': {e.message}")
            return []
        except ConfigurationError as e:
            metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="unconfigured").inc()
            logger.debug(f"Skipping rating proxy for '{place_name}': {e.message}")
            return []
        except PlaceIntelError as e:
            self._record_failure(place_name, e)
            return []
        except Exception as e:
            self._record_failure(place_name, MalformedResponseError(SERVICE_NAME, f"{type(e).__name__}: {e}"))
            return []

        if self._consecutive_failures:
            logger.info(f"Rating proxy recovered after {self._consecutive_failures} failures")
        self._consecutive_failures = 0
        metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome="success").inc()
        logger.debug(f"Rating proxy returned {len(signals)} signals for '{place_name}'")
        return signals

    def _record_failure(self, place_name: str, error: PlaceIntelError):
        outcome = "malformed" if isinstance(error, MalformedResponseError) else "error"
        metrics.upstream_fetches_total.labels(service=SERVICE_NAME, outcome=outcome).inc()
        metrics.errors_total.labels(component=SERVICE_NAME, error_type=error.error_code).inc()

        self._consecutive_failures += 1
        message = f"Rating proxy failed for '{place_name}': {error.message}"
        if self._consecutive_failures == 1:
            logger.warning(message)
        else:
            logger.debug(message)
