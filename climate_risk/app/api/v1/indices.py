"""
Climate indices endpoint.

Endpoints:
    GET /api/v1/indices — SPI, SPEI, PDSI, heat index and wind chill
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from climate_risk.app.api.dependencies import default_period, get_service
from climate_risk.app.api.schemas import IndicesResponse
from climate_risk.app.services.risk_service import ClimateRiskService

router = APIRouter(prefix="/api/v1/indices", tags=["climate-indices"])


@router.get("", response_model=IndicesResponse, summary="Standardized climate indices for a point")
async def get_indices(
    lat: float = Query(..., description="Latitude in decimal degrees", examples=[-1.9441]),
    lon: float = Query(..., description="Longitude in decimal degrees", examples=[30.0619]),
    start: Optional[date] = Query(None, description="First day (YYYY-MM-DD)"),
    end: Optional[date] = Query(None, description="Last day (YYYY-MM-DD)"),
    timescale: int = Query(3, description="SPI/SPEI window in months"),
    service: ClimateRiskService = Depends(get_service),
):
    start, end = default_period(start, end, service)
    return await service.indices_report(lat, lon, start, end, timescale)
