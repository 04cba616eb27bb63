"""
FastAPI hazard risk endpoints.

Endpoints:
    GET  /api/v1/risk/{hazard}         — current flood / drought / landslide risk
    POST /api/v1/risk/flood/assess     — score caller-supplied flood factors
    POST /api/v1/risk/drought/assess   — score caller-supplied drought factors
    POST /api/v1/risk/landslide/assess — score caller-supplied landslide factors

The POST routes are pure: no upstream fetch, no cache.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from climate_risk.app.api.dependencies import get_service
from climate_risk.app.api.schemas import (
    DroughtFactorsIn,
    FloodFactorsIn,
    LandslideFactorsIn,
    RiskAssessmentOut,
)
from climate_risk.app.scoring.drought import DroughtFactors, assess_drought
from climate_risk.app.scoring.flood import FloodFactors, assess_flood
from climate_risk.app.scoring.landslide import LandslideFactors, assess_landslide
from climate_risk.app.services.risk_service import ClimateRiskService

router = APIRouter(prefix="/api/v1/risk", tags=["hazard-risk"])


@router.post("/flood/assess", response_model=RiskAssessmentOut, summary="Score flood factors")
async def assess_flood_factors(body: FloodFactorsIn):
    return assess_flood(FloodFactors(**body.model_dump())).to_dict()


@router.post("/drought/assess", response_model=RiskAssessmentOut, summary="Score drought factors")
async def assess_drought_factors(body: DroughtFactorsIn):
    return assess_drought(DroughtFactors(**body.model_dump())).to_dict()


@router.post("/landslide/assess", response_model=RiskAssessmentOut, summary="Score landslide factors")
async def assess_landslide_factors(body: LandslideFactorsIn):
    return assess_landslide(LandslideFactors(**body.model_dump())).to_dict()


@router.get("/{hazard}", response_model=RiskAssessmentOut, summary="Current hazard risk for a point")
async def get_hazard_risk(
    hazard: str,
    lat: float = Query(..., description="Latitude in decimal degrees"),
    lon: float = Query(..., description="Longitude in decimal degrees"),
    slope: Optional[float] = Query(None, description="Override the sampled slope (degrees)"),
    ndvi: Optional[float] = Query(None, description="Vegetation index, landslide only"),
    recent_seismic_activity: bool = Query(False, description="Landslide only"),
    service: ClimateRiskService = Depends(get_service),
):
    assessment = await service.risk(
        hazard, lat, lon,
        slope=slope, ndvi=ndvi, recent_seismic_activity=recent_seismic_activity,
    )
    return assessment.to_dict()
