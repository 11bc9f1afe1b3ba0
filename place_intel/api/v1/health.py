"""
Health Check Endpoints

- Liveness with circuit breaker and cache status
- Metrics (JSON and Prometheus text format)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from place_intel.core.circuit_breaker import CircuitState, get_all_circuit_breaker_stats
from place_intel.core.config import settings
from place_intel.core.metrics import metrics
from place_intel.services.intelligence_service import (
    PlaceIntelligenceEngine,
    get_intelligence_engine,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_START_TIME = datetime.now(timezone.utc)


class HealthStatus(BaseModel):
    """Health status response"""
    status: str  # "healthy" or "degraded"
    timestamp: str
    version: str
    uptime_seconds: Optional[float] = None
    circuit_breakers: Dict[str, Dict[str, Any]]
    caches: Dict[str, Dict[str, Any]]


def get_uptime() -> float:
    return (datetime.now(timezone.utc) - SERVICE_START_TIME).total_seconds()


@router.get("/health", response_model=HealthStatus)
async def health(engine: PlaceIntelligenceEngine = Depends(get_intelligence_engine)):
    """
    The engine answers even with every upstream down, so an open breaker
    only marks the service degraded.
    """
    breakers = get_all_circuit_breaker_stats()
    degraded = any(stats["state"] != CircuitState.CLOSED.value for stats in breakers.values())

    return HealthStatus(
        status="degraded" if degraded else "healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.MODEL_VERSION,
        uptime_seconds=get_uptime(),
        circuit_breakers=breakers,
        caches={
            space.name: space.cache.stats
            for space in (engine.results, engine.external, engine.context)
        },
    )


@router.get("/metrics")
async def get_metrics_json():
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metrics": metrics.export_metrics(),
    }


@router.get("/metrics/prometheus", response_class=PlainTextResponse)
async def get_metrics_prometheus():
    return metrics.export_prometheus_format()
