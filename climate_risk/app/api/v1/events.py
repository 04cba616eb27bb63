"""
Extreme-weather event endpoints.

Endpoints:
    GET /api/v1/events         — detected heat/cold waves, droughts, floods, storms
    GET /api/v1/events/alerts  — alerts from the latest observed conditions
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from climate_risk.app.api.dependencies import default_period, get_service
from climate_risk.app.api.schemas import AlertsResponse, EventsResponse
from climate_risk.app.events.detector import EventThresholds
from climate_risk.app.services.risk_service import ClimateRiskService

router = APIRouter(prefix="/api/v1/events", tags=["extreme-events"])

_DEFAULTS = EventThresholds()


@router.get("", response_model=EventsResponse, summary="Detect extreme-weather events")
async def get_events(
    lat: float = Query(..., description="Latitude in decimal degrees"),
    lon: float = Query(..., description="Longitude in decimal degrees"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    heat_threshold: float = Query(_DEFAULTS.heat_temperature, description="°C"),
    cold_threshold: float = Query(_DEFAULTS.cold_temperature, description="°C"),
    drought_threshold: float = Query(_DEFAULTS.drought_precipitation, description="mm/day"),
    flood_threshold: float = Query(_DEFAULTS.flood_daily_precipitation, description="mm/day"),
    storm_threshold: float = Query(_DEFAULTS.storm_wind_speed, description="m/s"),
    include_ongoing: bool = Query(True, description="Emit runs still open at the end of the period"),
    service: ClimateRiskService = Depends(get_service),
):
    start, end = default_period(start, end, service)
    thresholds = EventThresholds(
        heat_temperature=heat_threshold,
        cold_temperature=cold_threshold,
        drought_precipitation=drought_threshold,
        flood_daily_precipitation=flood_threshold,
        storm_wind_speed=storm_threshold,
        flush_at_end=include_ongoing,
    )
    return await service.events_report(lat, lon, start, end, thresholds)


@router.get("/alerts", response_model=AlertsResponse, summary="Weather alerts for current conditions")
async def get_alerts(
    lat: float = Query(...),
    lon: float = Query(...),
    service: ClimateRiskService = Depends(get_service),
):
    alerts = await service.current_alerts(lat, lon)
    return {"location": {"lat": lat, "lon": lon}, "alerts": alerts}
