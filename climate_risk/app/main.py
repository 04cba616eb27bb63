"""
FastAPI application entry point.

Run with:
    uvicorn climate_risk.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn climate_risk.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from climate_risk.app.core.cache import build_cache
from climate_risk.app.core.config import settings
from climate_risk.app.core.errors import register_error_handlers
from climate_risk.app.core.health import HealthStatus, run_health_check
from climate_risk.app.core.logging_config import get_logger, setup_logging
from climate_risk.app.core.middleware import RequestLoggingMiddleware
from climate_risk.app.ingestion.providers import (
    ElevationClient,
    LandslideCatalogClient,
    build_provider,
)
from climate_risk.app.services.risk_service import ClimateRiskService

# ── API routers ──
from climate_risk.app.api.v1.events import router as events_router
from climate_risk.app.api.v1.historical import router as historical_router
from climate_risk.app.api.v1.indices import router as indices_router
from climate_risk.app.api.v1.risk import router as risk_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)

ServiceFactory = Callable[[], ClimateRiskService]


def build_service() -> ClimateRiskService:
    """Service wired from settings: provider, cache, terrain and catalogue clients."""
    return ClimateRiskService(
        provider=build_provider(settings),
        cache=build_cache(settings),
        elevation=ElevationClient(),
        catalog=LandslideCatalogClient(),
    )


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build and open the service on startup; close it on shutdown."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    service = app.state.service_factory()
    app.state.service = service
    try:
        if service.cache is not None:
            await service.cache.open()
        yield
    finally:
        if service.cache is not None:
            await service.cache.close()
        await service.close()
        logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

def create_app(service_factory: ServiceFactory = build_service) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Climate risk signals for a geographic point: standardized "
            "climate indices (SPI, SPEI, simplified PDSI, heat index, wind "
            "chill), extreme-weather event detection, flood / drought / "
            "landslide risk scoring, and multi-year monthly history with "
            "seasonal patterns and trends."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.service_factory = service_factory

    # ── Middleware stack (outermost first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(indices_router)
    app.include_router(events_router)
    app.include_router(risk_router)
    app.include_router(historical_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "climate-indices",
                "extreme-events",
                "hazard-risk",
                "historical-analysis",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Deep health probe: cache backend and configured providers."""
        report = await run_health_check(request.app.state.service.cache)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(request: Request):
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(request.app.state.service.cache)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
