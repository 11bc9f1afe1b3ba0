from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from place_intel.core.circuit_breaker import reset_all_circuit_breakers
from place_intel.models.signals import VisitReport
from place_intel.services.intelligence_service import PlaceIntelligenceEngine
from tests.utils.fakes import FIXED_NOW, FakeRatingProxy, FakeWeather


@pytest.fixture(autouse=True)
def _closed_breakers():
    """Breakers are process-wide; keep one test's failures out of the next."""
    reset_all_circuit_breakers()
    yield
    reset_all_circuit_breakers()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_report():
    """Factory for visit reports; hours_ago is relative to FIXED_NOW."""

    def _make(hours_ago: float = 1.0, **fields) -> VisitReport:
        fields.setdefault("created_at", FIXED_NOW - timedelta(hours=hours_ago))
        return VisitReport(**fields)

    return _make


@pytest.fixture
def rating_proxy() -> FakeRatingProxy:
    return FakeRatingProxy()


@pytest.fixture
def weather() -> FakeWeather:
    return FakeWeather()


@pytest.fixture
def engine(rating_proxy, weather) -> PlaceIntelligenceEngine:
    return PlaceIntelligenceEngine(rating_proxy=rating_proxy, weather=weather)


@pytest.fixture
def client() -> TestClient:
    """
    A fixture that provides a test client for the FastAPI application.
    """
    from place_intel.main import app

    with TestClient(app) as c:
        yield c
