"""
Historical analysis endpoints.

Endpoints:
    GET /api/v1/historical/monthly     — monthly weather statistics
    GET /api/v1/historical/flood       — monthly flood scores, seasonality, trend
    GET /api/v1/historical/drought     — monthly drought scores, seasonality, trend
    GET /api/v1/historical/landslides  — landslide catalogue summary
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from climate_risk.app.api.dependencies import get_service
from climate_risk.app.api.schemas import HistoricalResponse, LandslideHistoryResponse
from climate_risk.app.services.risk_service import ClimateRiskService

router = APIRouter(prefix="/api/v1/historical", tags=["historical"])


@router.get("/monthly", response_model=HistoricalResponse)
async def get_monthly(
    lat: float = Query(...),
    lon: float = Query(...),
    years: int = Query(5, description="Years of history (1–10)"),
    service: ClimateRiskService = Depends(get_service),
):
    return await service.historical_monthly(lat, lon, years)


@router.get("/flood", response_model=HistoricalResponse)
async def get_flood_history(
    lat: float = Query(...),
    lon: float = Query(...),
    years: int = Query(5, description="Years of history (1–10)"),
    service: ClimateRiskService = Depends(get_service),
):
    return await service.historical_flood(lat, lon, years)


@router.get("/drought", response_model=HistoricalResponse)
async def get_drought_history(
    lat: float = Query(...),
    lon: float = Query(...),
    years: int = Query(5, description="Years of history (1–10)"),
    baseline_daily: Optional[float] = Query(
        None, description="Pin the baseline daily rainfall (mm) instead of the window mean",
    ),
    service: ClimateRiskService = Depends(get_service),
):
    return await service.historical_drought(lat, lon, years, baseline_daily)


@router.get("/landslides", response_model=LandslideHistoryResponse)
async def get_landslide_history(
    lat: float = Query(...),
    lon: float = Query(...),
    service: ClimateRiskService = Depends(get_service),
):
    return await service.landslide_history(lat, lon)
