"""
Tests for the rating proxy and weather gateways, using httpx.MockTransport
"""
import json

import httpx
import pytest

from place_intel.core.circuit_breaker import CircuitBreaker, CircuitState
from place_intel.integrations.rating_proxy import (
    RatingProxyGateway,
    external_cache_key,
    normalize_external_signals,
)
from place_intel.integrations.weather import (
    WeatherGateway,
    classify_weather,
    context_cache_key,
    crowd_impact_for,
    weather_confidence,
)
from place_intel.core.exceptions import ConfigurationError, MalformedResponseError
from place_intel.core.metrics import metrics
from place_intel.models.signals import Coordinates, CrowdImpact, ExternalSource, WeatherCondition

ENDPOINT = "https://proxy.test/placeSignalsProxy"
LOCATION = Coordinates(lat=30.26715, lng=-97.74306)


class StaticToken:
    def __init__(self, token):
        self.token = token

    async def get_token(self):
        return self.token


class BrokenToken:
    async def get_token(self):
        raise RuntimeError("identity service down")


def proxy_with(handler, **kwargs) -> RatingProxyGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("breaker", CircuitBreaker("test_rating_proxy", failure_threshold=3))
    return RatingProxyGateway(endpoint=ENDPOINT, http_client=client, **kwargs)


class TestNormalizeExternalSignals:
    def test_drops_unknown_sources_and_cleans_fields(self):
        signals = normalize_external_signals([
            {"source": "yelp", "rating": 4.5, "reviewCount": 210, "priceLevel": " $$ ", "categories": ["Cafes", "", 3]},
            {"source": "tripadvisor", "rating": 5},
            {"source": "foursquare", "rating": "great", "priceLevel": "   "},
            "garbage",
        ])

        assert [s.source for s in signals] == [ExternalSource.YELP, ExternalSource.FOURSQUARE]
        assert signals[0].price_level == "$$"
        assert signals[0].categories == ["Cafes"]
        assert signals[0].review_count == 210
        assert signals[1].rating is None
        assert signals[1].price_level is None

    def test_non_list_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            normalize_external_signals({"source": "yelp"})

    def test_cache_key_rounds_coordinates(self):
        assert external_cache_key("Cafe", None, LOCATION) == ("", "Cafe", "30.267", "-97.743")


@pytest.mark.asyncio
class TestRatingProxyGateway:
    """Tests for RatingProxyGateway.fetch_signals"""

    async def test_posts_venue_and_auth_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["headers"] = request.headers
            return httpx.Response(200, json={"externalSignals": [{"source": "yelp", "rating": 4.6, "reviewCount": 120}]})

        gateway = proxy_with(
            handler,
            id_token_provider=StaticToken("id-123"),
            integrity_token_provider=StaticToken("integrity-456"),
        )
        signals = await gateway.fetch_signals("Daily Grind", "venue-1", LOCATION)

        assert len(signals) == 1
        assert signals[0].rating == 4.6
        assert seen["body"] == {
            "placeName": "Daily Grind",
            "placeId": "venue-1",
            "location": {"lat": LOCATION.lat, "lng": LOCATION.lng},
        }
        assert seen["headers"]["authorization"] == "Bearer id-123"
        assert seen["headers"]["x-firebase-appcheck"] == "integrity-456"

    async def test_token_failure_is_not_fatal(self):
        def handler(request):
            assert "authorization" not in request.headers
            return httpx.Response(200, json={"externalSignals": []})

        gateway = proxy_with(handler, id_token_provider=BrokenToken())
        assert await gateway.fetch_signals("Daily Grind", None, LOCATION) == []

    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(401, json={"error": "unauthenticated"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"externalSignals": "nope"}),
    ])
    async def test_failures_yield_empty_list(self, response):
        gateway = proxy_with(lambda request: response)
        assert await gateway.fetch_signals("Daily Grind", None, LOCATION) == []

    async def test_timeout_yields_empty_list(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = proxy_with(handler)
        assert await gateway.fetch_signals("Daily Grind", None, LOCATION) == []

    async def test_skips_without_name_location_or_endpoint(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"externalSignals": []})

        gateway = proxy_with(handler)
        assert await gateway.fetch_signals("", None, LOCATION) == []
        assert await gateway.fetch_signals("Daily Grind", None, None) == []

        no_endpoint = RatingProxyGateway(endpoint="", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        assert await no_endpoint.fetch_signals("Daily Grind", None, LOCATION) == []
        assert calls == []

    async def test_open_circuit_skips_network(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        breaker = CircuitBreaker("test_proxy_trip", failure_threshold=2, recovery_timeout=60)
        gateway = proxy_with(handler, breaker=breaker)

        for _ in range(4):
            assert await gateway.fetch_signals("Daily Grind", None, LOCATION) == []

        assert breaker.state == CircuitState.OPEN
        assert len(calls) == 2

    async def test_missing_endpoint_is_a_configuration_error(self):
        gateway = RatingProxyGateway(endpoint="", http_client=httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"externalSignals": []})
        )))
        unconfigured = metrics.upstream_fetches_total.labels(service="rating_proxy", outcome="unconfigured")
        before = unconfigured.get()

        with pytest.raises(ConfigurationError):
            await gateway._request("Daily Grind", None, LOCATION)
        assert await gateway.fetch_signals("Daily Grind", None, LOCATION) == []
        assert unconfigured.get() == before + 1

    async def test_unexpected_error_yields_empty_list(self, mocker):
        mocker.patch(
            "place_intel.integrations.rating_proxy.normalize_external_signals",
            side_effect=TypeError("unhashable type"),
        )
        gateway = proxy_with(lambda request: httpx.Response(200, json={"externalSignals": []}))

        assert await gateway.fetch_signals("Daily Grind", None, LOCATION) == []


class TestWeatherClassification:
    @pytest.mark.parametrize("code,precip,condition", [
        (0, 0.0, WeatherCondition.CLEAR),
        (1, None, WeatherCondition.CLEAR),
        (3, 0.0, WeatherCondition.CLOUDY),
        (45, 0.0, WeatherCondition.CLOUDY),
        (61, 2.0, WeatherCondition.RAIN),
        (95, 0.0, WeatherCondition.RAIN),
        (3, 0.5, WeatherCondition.RAIN),
        (73, 0.4, WeatherCondition.SNOW),
        (86, 0.0, WeatherCondition.SNOW),
        (None, None, WeatherCondition.UNKNOWN),
    ])
    def test_classify(self, code, precip, condition):
        assert classify_weather(code, precip) == condition

    def test_crowd_impact(self):
        assert crowd_impact_for(WeatherCondition.RAIN) == CrowdImpact.INCREASE
        assert crowd_impact_for(WeatherCondition.SNOW) == CrowdImpact.INCREASE
        assert crowd_impact_for(WeatherCondition.CLEAR) == CrowdImpact.DECREASE
        assert crowd_impact_for(WeatherCondition.CLOUDY) == CrowdImpact.NEUTRAL

    def test_confidence_grows_with_precipitation(self):
        light = weather_confidence(WeatherCondition.RAIN, 0.2)
        heavy = weather_confidence(WeatherCondition.RAIN, 10.0)
        assert light < heavy == 0.9
        assert weather_confidence(WeatherCondition.SNOW, 0) > weather_confidence(WeatherCondition.CLOUDY, 0)

    def test_context_key_is_coarse(self):
        assert context_cache_key(LOCATION) == ("30.27", "-97.74")


@pytest.mark.asyncio
class TestWeatherGateway:
    async def test_disabled_makes_no_request(self):
        def handler(request):
            raise AssertionError("should not be called")

        gateway = WeatherGateway(
            base_url="https://weather.test/v1/forecast",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            enabled=False,
        )
        assert await gateway.fetch_context(LOCATION) == []

    async def test_fetches_and_classifies(self):
        def handler(request):
            assert request.url.params["latitude"] == str(LOCATION.lat)
            assert "weather_code" in request.url.params["current"]
            return httpx.Response(200, json={
                "current": {"weather_code": 63, "precipitation": 1.5, "temperature_2m": 11.2}
            })

        gateway = WeatherGateway(
            base_url="https://weather.test/v1/forecast",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            enabled=True,
            breaker=CircuitBreaker("test_weather"),
        )
        signals = await gateway.fetch_context(LOCATION)

        assert len(signals) == 1
        assert signals[0].condition == WeatherCondition.RAIN
        assert signals[0].crowd_impact == CrowdImpact.INCREASE
        assert signals[0].confidence == pytest.approx(0.7)
        assert signals[0].temperature_c == 11.2

    async def test_malformed_payload_yields_empty(self):
        gateway = WeatherGateway(
            base_url="https://weather.test/v1/forecast",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))),
            enabled=True,
            breaker=CircuitBreaker("test_weather_malformed"),
        )
        assert await gateway.fetch_context(LOCATION) == []

    async def test_non_finite_weather_code_is_unknown(self):
        # 1e400 decodes to inf, which has no integer weather code
        body = b'{"current": {"weather_code": 1e400, "precipitation": 0.0}}'
        gateway = WeatherGateway(
            base_url="https://weather.test/v1/forecast",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body))),
            enabled=True,
            breaker=CircuitBreaker("test_weather_overflow"),
        )
        signals = await gateway.fetch_context(LOCATION)

        assert len(signals) == 1
        assert signals[0].condition == WeatherCondition.UNKNOWN
        assert signals[0].weather_code is None

    async def test_unexpected_parse_error_yields_empty(self, mocker):
        mocker.patch(
            "place_intel.integrations.weather.parse_current_weather",
            side_effect=OverflowError("cannot convert float infinity to integer"),
        )
        gateway = WeatherGateway(
            base_url="https://weather.test/v1/forecast",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"current": {"weather_code": 3}})
            )),
            enabled=True,
            breaker=CircuitBreaker("test_weather_unexpected"),
        )
        assert await gateway.fetch_context(LOCATION) == []
