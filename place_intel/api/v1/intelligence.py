"""
Place intelligence endpoints
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from place_intel.models.intelligence import PlaceIntelligenceResult
from place_intel.models.signals import BuildIntelligenceInput
from place_intel.services.intelligence_service import (
    PlaceIntelligenceEngine,
    get_intelligence_engine,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/places/intelligence")


@router.post("", response_model=PlaceIntelligenceResult)
async def build_intelligence(
    payload: BuildIntelligenceInput,
    engine: PlaceIntelligenceEngine = Depends(get_intelligence_engine),
):
    """
    Build intelligence for one venue.

    Always 200: upstream failures degrade the result's confidence and
    provenance instead of failing the request.
    """
    return await engine.build(payload)


@router.delete("/cache")
async def invalidate_cache(
    venue_id: Optional[str] = Query(None, description="Purge only this venue; omit to clear everything"),
    engine: PlaceIntelligenceEngine = Depends(get_intelligence_engine),
):
    removed = engine.invalidate(venue_id)
    return {"invalidated": removed, "venue_id": venue_id}
