"""
Telemetry sinks for sampled intelligence snapshots.

Snapshots go to an append-only Redis stream for offline evaluation. Without
a configured Redis URL the NullTelemetrySink is used instead.
"""
import json
import logging
from typing import Any, Dict, Optional, Protocol

import redis.asyncio as redis

from place_intel.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    telemetry_circuit_breaker,
)
from place_intel.core.config import settings
from place_intel.core.exceptions import TelemetryError

logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    async def write(self, snapshot: Dict[str, Any]) -> None:
        ...

    async def close(self) -> None:
        ...


class NullTelemetrySink:
    """Accepts and discards snapshots."""

    def __init__(self):
        self.written = 0

    async def write(self, snapshot: Dict[str, Any]) -> None:
        self.written += 1

    async def close(self) -> None:
        return None


class RedisTelemetrySink:
    """Appends JSON snapshots to a capped Redis stream with XADD"""

    def __init__(
        self,
        url: Optional[str] = None,
        stream: Optional[str] = None,
        maxlen: Optional[int] = None,
        client: Optional[redis.Redis] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.url = url or settings.REDIS_URL
        self.stream = stream or settings.TELEMETRY_STREAM
        self.maxlen = maxlen or settings.TELEMETRY_STREAM_MAXLEN
        self._client = client
        self._circuit_breaker = breaker or telemetry_circuit_breaker

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            if not self.url:
                raise TelemetryError("REDIS_URL is not configured")
            self._client = redis.from_url(self.url, encoding="utf-8", decode_responses=True)
        return self._client

    async def write(self, snapshot: Dict[str, Any]) -> None:
        try:
            async with self._circuit_breaker:
                await self._get_client().xadd(
                    self.stream,
                    {"payload": json.dumps(snapshot, default=str)},
                    maxlen=self.maxlen,
                    approximate=True,
                )
        except CircuitBreakerError as e:
            raise TelemetryError(e.message) from e
        except redis.RedisError as e:
            raise TelemetryError(str(e)) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Telemetry Redis client closed")


def create_telemetry_sink() -> TelemetrySink:
    """Redis sink when REDIS_URL is set, otherwise a no-op sink."""
    if settings.REDIS_URL:
        return RedisTelemetrySink()
    logger.info("REDIS_URL not set; telemetry snapshots will be discarded")
    return NullTelemetrySink()
