import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from place_intel.models.signals import ExternalRatingSignal

FIXED_NOW = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


class FakeRatingProxy:
    """Stands in for RatingProxyGateway; counts calls."""

    def __init__(self, signals: Optional[List[ExternalRatingSignal]] = None, delay: float = 0.0):
        self.endpoint = "https://proxy.test/placeSignalsProxy"
        self.signals = signals or []
        self.delay = delay
        self.calls = 0

    async def fetch_signals(self, place_name, place_id, location):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.signals)

    async def close(self):
        return None


class FakeWeather:
    def __init__(self, signals=None, enabled: bool = False):
        self.enabled = enabled
        self.signals = signals or []
        self.calls = 0

    async def fetch_context(self, location):
        self.calls += 1
        return list(self.signals)

    async def close(self):
        return None
