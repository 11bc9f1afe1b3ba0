"""
Place Intelligence Service
Builds the intelligence summary for one venue

Pipeline:
    visit reports ─┐
    rating proxy ──┼─> aggregate -> reliability / momentum -> compose score
    weather ───────┘      -> forecast / highlights / use cases -> cached result

The engine owns three cache spaces (results, external signals, context
signals). Concurrent builds for the same venue share one computation, and
concurrent misses on the same external or context key share one upstream
request.

build() never raises: any failure inside the pipeline returns the fixed
low-confidence default result, which is not cached.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from place_intel.collectors.signal_extractor import extract_signals
from place_intel.core.cache import CacheSpace
from place_intel.core.config import settings
from place_intel.core.metrics import metrics
from place_intel.integrations.rating_proxy import RatingProxyGateway, external_cache_key
from place_intel.integrations.weather import WeatherGateway, context_cache_key
from place_intel.models.intelligence import (
    FactorScore,
    Momentum,
    PlaceIntelligenceResult,
    Provenance,
    Reliability,
)
from place_intel.models.signals import (
    BuildIntelligenceInput,
    ContextSignal,
    ExternalRatingSignal,
    VisitReport,
)
from place_intel.services.inference_fallback import resolve_metrics
from place_intel.services.score_composer import (
    FACTOR_NAMES,
    average_rating,
    derive_best_time,
    derive_crowd_level,
    derive_highlights,
    derive_use_cases,
    score_composer,
)
from place_intel.services.telemetry_sampler import TelemetrySampler
from place_intel.services.vibe_classifier import VibeInputs, compute_vibe_scores, get_primary_vibe
from place_intel.utils.external_meta import compute_external_meta
from place_intel.utils.forecast import build_crowd_forecast
from place_intel.utils.momentum import as_aware, compute_momentum
from place_intel.utils.reliability import compute_reliability

logger = logging.getLogger(__name__)


FALLBACK_WORK_SCORE = 50
FALLBACK_CONFIDENCE = 0.1

RELIABILITY_CONFIDENCE_WEIGHT = 0.8
EXTERNAL_CONFIDENCE_WEIGHT = 0.2


class VisitReportSource(Protocol):
    """Read-only access to a venue's recent visit reports."""

    async def recent_reports(self, venue_id: str, limit: int) -> Sequence[VisitReport]:
        ...


def result_cache_key(data: BuildIntelligenceInput) -> Tuple[str, str, str, str]:
    if data.location is None:
        return (data.place_id or "", data.place_name, "", "")
    return (data.place_id or "", data.place_name, f"{data.location.lat:.3f}", f"{data.location.lng:.3f}")


def default_result(model_version: Optional[str] = None) -> PlaceIntelligenceResult:
    """The fixed answer returned when the pipeline fails."""
    return PlaceIntelligenceResult(
        work_score=FALLBACK_WORK_SCORE,
        confidence=FALLBACK_CONFIDENCE,
        score_breakdown={name: FactorScore(points=0.0, provenance=Provenance.NONE) for name in FACTOR_NAMES},
        reliability=Reliability(),
        momentum=Momentum(),
        model_version=model_version or settings.MODEL_VERSION,
    )


def resolve_timezone(name: Optional[str]) -> tzinfo:
    for candidate in (name, settings.DEFAULT_TIMEZONE):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug(f"Unknown time zone '{candidate}'")
    return timezone.utc


class PlaceIntelligenceEngine:
    """
    One per process. Holds the caches and the upstream gateways.
    """

    def __init__(
        self,
        rating_proxy: Optional[RatingProxyGateway] = None,
        weather: Optional[WeatherGateway] = None,
        telemetry: Optional[TelemetrySampler] = None,
        report_source: Optional[VisitReportSource] = None,
        clock=time.monotonic,
        model_version: Optional[str] = None,
    ):
        self.rating_proxy = rating_proxy or RatingProxyGateway()
        self.weather = weather or WeatherGateway()
        self.telemetry = telemetry
        self.report_source = report_source
        self.model_version = model_version or settings.MODEL_VERSION

        maxsize = settings.CACHE_MAX_ENTRIES
        self.results = CacheSpace("intelligence", settings.INTELLIGENCE_TTL_SECONDS, maxsize, clock)
        self.external = CacheSpace("external_signals", settings.EXTERNAL_SIGNAL_TTL_SECONDS, maxsize, clock)
        self.context = CacheSpace("context_signals", settings.CONTEXT_SIGNAL_TTL_SECONDS, maxsize, clock)

    # ==================== Public API ====================

    async def build(self, data: Union[BuildIntelligenceInput, Dict[str, Any]]) -> PlaceIntelligenceResult:
        """
        Build (or return the cached) intelligence for a venue.

        Always resolves. On any internal failure returns default_result().
        """
        start = time.perf_counter()
        try:
            if not isinstance(data, BuildIntelligenceInput):
                data = BuildIntelligenceInput.model_validate(data)

            key = result_cache_key(data)
            cached = self.results.cache.get(key)
            if cached is not None:
                self._record_outcome("cache_hit", start)
                return cached

            generation = self.results.generation
            result = await self.results.inflight.run(
                key, lambda: self._compute_and_store(key, data, generation)
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error(
                f"Intelligence build failed after {elapsed_ms:.1f}ms, returning fallback: {e}",
                exc_info=True,
            )
            metrics.errors_total.labels(component="intelligence", error_type=type(e).__name__).inc()
            self._record_outcome("fallback", start)
            return default_result(self.model_version)

        self._record_outcome("success", start)
        if self.telemetry is not None:
            self.telemetry.maybe_record(data.place_id or data.place_name, result, data.user_id)
        return result

    def invalidate(self, venue_id: Optional[str] = None) -> int:
        """
        Purge cached entries.

        With a venue id, drops only that venue's results and external signals;
        context entries are keyed by coordinates alone and are left in place.
        Without one, clears every cache space.
        """
        if venue_id:
            def belongs(key) -> bool:
                return key[0] == venue_id

            removed = self.results.purge(belongs) + self.external.purge(belongs)
        else:
            removed = self.results.purge() + self.external.purge() + self.context.purge()

        logger.info(f"Invalidated {removed} cache entries (venue={venue_id or 'all'})")
        return removed

    async def close(self):
        await self.rating_proxy.close()
        await self.weather.close()
        if self.telemetry is not None:
            await self.telemetry.stop()

    # ==================== Pipeline ====================

    def _record_outcome(self, outcome: str, start: float):
        metrics.builds_total.labels(outcome=outcome).inc()
        metrics.build_latency.labels(outcome=outcome).observe(time.perf_counter() - start)

    async def _compute_and_store(
        self,
        key: Tuple[str, ...],
        data: BuildIntelligenceInput,
        generation: int,
    ) -> PlaceIntelligenceResult:
        # An invalidate() that lands while this runs wins over the result
        result = await self._compute(data)
        self.results.store_if_current(key, result, generation)
        return result

    async def _load_reports(self, data: BuildIntelligenceInput, tz: tzinfo) -> List[VisitReport]:
        if data.reports is not None:
            reports = list(data.reports)
        elif self.report_source is not None and data.place_id:
            reports = list(await self.report_source.recent_reports(data.place_id, settings.REPORT_WINDOW_LIMIT))
        else:
            reports = []

        if len(reports) > settings.REPORT_WINDOW_LIMIT:
            reports.sort(key=lambda r: as_aware(r.created_at, tz), reverse=True)
            reports = reports[:settings.REPORT_WINDOW_LIMIT]
        return reports

    async def _external_signals(self, data: BuildIntelligenceInput) -> List[ExternalRatingSignal]:
        if not data.place_name or data.location is None:
            return []
        return await self.external.get_or_fetch(
            external_cache_key(data.place_name, data.place_id, data.location),
            lambda: self.rating_proxy.fetch_signals(data.place_name, data.place_id, data.location),
        )

    async def _context_signals(self, data: BuildIntelligenceInput) -> List[ContextSignal]:
        if not self.weather.enabled or data.location is None:
            return []
        return await self.context.get_or_fetch(
            context_cache_key(data.location),
            lambda: self.weather.fetch_context(data.location),
        )

    async def _compute(self, data: BuildIntelligenceInput) -> PlaceIntelligenceResult:
        tz = resolve_timezone(data.timezone)
        now = as_aware(data.now or datetime.now(timezone.utc), tz)
        current_hour = now.astimezone(tz).hour

        reports = await self._load_reports(data, tz)
        signals = extract_signals(reports, tz)
        external, context = await asyncio.gather(
            self._external_signals(data),
            self._context_signals(data),
        )

        resolved = resolve_metrics(signals, data.inferred)
        external_meta = compute_external_meta(external)
        reliability = compute_reliability(
            signals.sample_size,
            signals.wifi_values,
            signals.busyness_values,
            signals.noise_values,
            signals.laptop_votes,
            external_meta.trust_score,
        )
        momentum = compute_momentum(reports, now, tz)

        intel = data.intel
        if data.open_now is not None:
            open_now, open_now_provenance = data.open_now, Provenance.OBSERVED
        elif intel is not None and intel.is_open_now is not None:
            open_now, open_now_provenance = intel.is_open_now, Provenance.API
        else:
            open_now, open_now_provenance = None, Provenance.NONE

        stored_rating = intel.avg_rating if intel is not None else None
        classification_text = " ".join(
            [data.place_name, *data.types, (intel.category if intel is not None else None) or ""]
        ).strip()

        composed = score_composer.compose(
            classification_text=classification_text,
            signals=signals,
            resolved=resolved,
            tag_scores=data.tag_scores,
            external_signals=external,
            stored_rating=stored_rating,
            context_signals=context,
            open_now=open_now,
            open_now_provenance=open_now_provenance,
            momentum=momentum,
        )

        confidence = round(max(0.1, min(0.95,
            RELIABILITY_CONFIDENCE_WEIGHT * reliability.score
            + EXTERNAL_CONFIDENCE_WEIGHT * external_meta.trust_score
        )), 2)

        forecast = build_crowd_forecast(signals.hourly, signals.busyness_avg, current_hour, confidence)
        crowd_level = derive_crowd_level(signals.busyness_avg)
        best_time = derive_best_time(signals.time_bucket_counts)

        live_rating = average_rating(external)
        vibe_scores = compute_vibe_scores(VibeInputs(
            noise=resolved.noise.value,
            busyness=signals.busyness_avg,
            wifi=resolved.wifi.value,
            drink_quality=signals.drink_quality_avg,
            drink_price=signals.drink_price_avg,
            top_outlet=signals.top_outlet,
            laptop_pct=resolved.laptop_pct.value,
            ambiance=signals.top_ambiance or (data.inferred.aesthetic_vibe if data.inferred else None),
            intent_counts=signals.intent_counts,
            tag_scores=data.tag_scores,
            photo_tags=signals.photo_tags,
            external_rating=live_rating if live_rating is not None else stored_rating,
            open_now=open_now is True,
            nlp=data.inferred,
        ))

        highlights = derive_highlights(
            hard_stop=composed.hard_stop,
            resolved=resolved,
            busyness=signals.busyness_avg,
            forecast=forecast,
            momentum=momentum,
            external_signals=external,
            open_now=open_now,
        )
        use_cases = derive_use_cases(
            work_score=composed.work_score,
            crowd_level=crowd_level,
            best_time=best_time,
            open_now=open_now,
            external_signals=external,
            wifi=resolved.wifi.value,
            laptop_pct=resolved.laptop_pct.value,
        )

        logger.debug(
            f"Built intelligence for '{data.place_name}': score={composed.work_score} "
            f"class={composed.venue_class.value} reports={signals.sample_size} "
            f"external={len(external)} confidence={confidence}"
        )

        return PlaceIntelligenceResult(
            work_score=composed.work_score,
            vibe_scores=vibe_scores,
            primary_vibe=get_primary_vibe(vibe_scores, current_hour, open_now is True),
            score_breakdown=composed.breakdown,
            crowd_level=crowd_level,
            best_time=best_time,
            confidence=confidence,
            reliability=reliability,
            momentum=momentum,
            highlights=highlights,
            use_cases=use_cases,
            external_signals=list(external),
            external_signal_meta=external_meta,
            context_signals=list(context),
            crowd_forecast=forecast,
            model_version=self.model_version,
            generated_at=now.astimezone(timezone.utc),
        )


# ==================== Process-wide facade ====================

_engine: Optional[PlaceIntelligenceEngine] = None


def get_intelligence_engine() -> PlaceIntelligenceEngine:
    """Get the process engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = PlaceIntelligenceEngine()
    return _engine


def set_intelligence_engine(engine: Optional[PlaceIntelligenceEngine]):
    """Install the engine built by the service host (or None to drop it)."""
    global _engine
    _engine = engine


async def build_place_intelligence(
    data: Union[BuildIntelligenceInput, Dict[str, Any]],
) -> PlaceIntelligenceResult:
    return await get_intelligence_engine().build(data)


def invalidate_place_intelligence_cache(venue_id: Optional[str] = None) -> int:
    return get_intelligence_engine().invalidate(venue_id)
