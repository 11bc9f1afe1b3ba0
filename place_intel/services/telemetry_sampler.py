"""
Telemetry Sampler
Records a small, rate-limited sample of computed results for offline evaluation

Decision pipeline for each result:
1. Bernoulli draw at TELEMETRY_SAMPLE_RATE
2. Per-venue window (TELEMETRY_MAX_PER_VENUE_PER_HOUR per hour)
3. Global window (TELEMETRY_MAX_PER_MINUTE per minute)
4. Queue the sink write on the background pool without awaiting it

Nothing here can fail or slow down the build that produced the result.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from place_intel.core.config import settings
from place_intel.core.metrics import metrics
from place_intel.core.rate_limiter import RateLimiter
from place_intel.core.worker_pool import AsyncWorkerPool
from place_intel.integrations.telemetry_sink import NullTelemetrySink, TelemetrySink
from place_intel.models.intelligence import PlaceIntelligenceResult

logger = logging.getLogger(__name__)

# Expired limiter keys are swept once per this many considered results
LIMITER_CLEANUP_EVERY = 256


def build_snapshot(
    venue_key: str,
    result: PlaceIntelligenceResult,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Flat, JSON-ready record of one result."""
    return {
        "venue_key": venue_key,
        "user_id": user_id,
        "work_score": result.work_score,
        "confidence": result.confidence,
        "crowd_level": result.crowd_level.value,
        "best_time": result.best_time.value,
        "primary_vibe": result.primary_vibe.value,
        "reliability": result.reliability.model_dump(),
        "momentum": result.momentum.model_dump(mode="json"),
        "external_signal_meta": result.external_signal_meta.model_dump(),
        "breakdown": {
            name: factor.model_dump(mode="json") for name, factor in result.score_breakdown.items()
        },
        "model_version": result.model_version,
        "generated_at": result.generated_at.isoformat(),
        "sampled_at": datetime.now(timezone.utc).isoformat(),
    }


class TelemetrySampler:
    """
    Probabilistic, rate-limited snapshot recorder.

    Attributes:
        sample_rate: Probability (0-1) that a result is considered at all
        enabled: Master switch; disabled samplers record nothing
    """

    def __init__(
        self,
        sink: Optional[TelemetrySink] = None,
        sample_rate: Optional[float] = None,
        enabled: Optional[bool] = None,
        pool: Optional[AsyncWorkerPool] = None,
        per_venue_limiter: Optional[RateLimiter] = None,
        global_limiter: Optional[RateLimiter] = None,
        random_source: Callable[[], float] = random.random,
    ):
        self.sink = sink or NullTelemetrySink()
        self.sample_rate = settings.TELEMETRY_SAMPLE_RATE if sample_rate is None else sample_rate
        self.enabled = settings.TELEMETRY_ENABLED if enabled is None else enabled
        self.pool = pool or AsyncWorkerPool(num_workers=1, queue_size=256, name="telemetry")
        self.per_venue_limiter = per_venue_limiter or RateLimiter(
            "telemetry_per_venue",
            max_requests=settings.TELEMETRY_MAX_PER_VENUE_PER_HOUR,
            window_seconds=3600,
        )
        self.global_limiter = global_limiter or RateLimiter(
            "telemetry_global",
            max_requests=settings.TELEMETRY_MAX_PER_MINUTE,
            window_seconds=60,
        )
        self._random = random_source
        self._considered = 0

    async def start(self):
        await self.pool.start()

    async def stop(self, timeout: float = 5.0):
        await self.pool.stop(timeout=timeout)
        await self.sink.close()

    def maybe_record(
        self,
        venue_key: str,
        result: PlaceIntelligenceResult,
        user_id: Optional[str] = None,
    ) -> bool:
        """
        Decide whether to record this result and queue the write if so.

        Synchronous and non-blocking; never raises.

        Returns:
            True if a write was queued
        """
        try:
            return self._maybe_record(venue_key, result, user_id)
        except Exception as e:
            metrics.telemetry_samples_total.labels(outcome="error").inc()
            logger.debug(f"Telemetry sampling failed for {venue_key}: {e}")
            return False

    def _maybe_record(self, venue_key: str, result: PlaceIntelligenceResult, user_id: Optional[str]) -> bool:
        if not self.enabled:
            return False

        self._considered += 1
        if self._considered % LIMITER_CLEANUP_EVERY == 0:
            self._sweep_limiters()

        if self._random() >= self.sample_rate:
            metrics.telemetry_samples_total.labels(outcome="not_sampled").inc()
            return False

        if not self.per_venue_limiter.is_allowed(venue_key):
            metrics.telemetry_samples_total.labels(outcome="venue_limited").inc()
            return False

        if not self.global_limiter.is_allowed():
            metrics.telemetry_samples_total.labels(outcome="global_limited").inc()
            return False

        snapshot = build_snapshot(venue_key, result, user_id)
        if not self.pool.submit_nowait(venue_key, self._write, snapshot):
            metrics.telemetry_samples_total.labels(outcome="dropped").inc()
            return False

        metrics.telemetry_samples_total.labels(outcome="queued").inc()
        return True

    def _sweep_limiters(self):
        removed = self.per_venue_limiter.cleanup_expired() + self.global_limiter.cleanup_expired()
        if removed:
            logger.debug(f"Swept {removed} expired telemetry limiter keys")

    async def _write(self, snapshot: Dict[str, Any]):
        try:
            await self.sink.write(snapshot)
            metrics.telemetry_samples_total.labels(outcome="written").inc()
        except Exception as e:
            metrics.telemetry_samples_total.labels(outcome="write_failed").inc()
            logger.debug(f"Telemetry write failed for {snapshot.get('venue_key')}: {e}")
