from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from place_intel.core.config import get_settings
from place_intel.core.exceptions import PlaceIntelError
from place_intel.integrations.telemetry_sink import create_telemetry_sink
from place_intel.services.intelligence_service import (
    PlaceIntelligenceEngine,
    set_intelligence_engine,
)
from place_intel.services.telemetry_sampler import TelemetrySampler

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Place Intelligence Service...")

    telemetry = TelemetrySampler(sink=create_telemetry_sink())
    await telemetry.start()

    engine = PlaceIntelligenceEngine(telemetry=telemetry)
    set_intelligence_engine(engine)
    logger.info(
        f"Place intelligence engine ready (model={engine.model_version}, "
        f"context_signals={'on' if engine.weather.enabled else 'off'}, "
        f"rating_proxy={'on' if engine.rating_proxy.endpoint else 'off'})"
    )

    yield

    logger.info("Shutting down Place Intelligence Service...")
    await engine.close()
    set_intelligence_engine(None)


app = FastAPI(
    title="Place Intelligence Service",
    description="Work-friendliness, vibe and crowd intelligence for venues",
    version="3.1.0",
    lifespan=lifespan,
)

cors_origins = settings.get_cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = PlaceIntelError(
        message="Request validation failed",
        error_code="VALIDATION_ERROR",
        details={"errors": exc.errors()},
    )
    return JSONResponse(status_code=422, content=jsonable_encoder(error.to_dict()))


# Include routers
from place_intel.api.v1 import health, intelligence
app.include_router(health.router, tags=["Health"])
app.include_router(intelligence.router, prefix="/v1", tags=["Intelligence"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Place Intelligence",
        "status": "operational",
        "version": "3.1.0",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010)
