"""
Pydantic schemas for the climate risk API.

Separated from the route handlers so they are reusable across routers
and tests. Factor bodies mirror the scorer dataclasses field for field;
every factor is optional and a missing one lowers confidence instead of
failing the request.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas — factor bodies for the pure scorers
# ---------------------------------------------------------------------------

class FloodFactorsIn(BaseModel):
    recent_daily_rain: Optional[float] = Field(
        None, ge=0, description="Mean daily rainfall over the last 7 days (mm/day)", examples=[18.0],
    )
    rainfall_anomaly: Optional[float] = Field(
        None, description="(recent mean − 30-day mean) / 30-day mean", examples=[0.6],
    )
    elevation: Optional[float] = Field(None, description="Elevation in metres", examples=[1420.0])
    slope: Optional[float] = Field(None, ge=0, le=90, description="Slope in degrees", examples=[2.5])


class DroughtFactorsIn(BaseModel):
    precipitation_anomaly: Optional[float] = Field(
        None, description="(recent − expected) / expected; negative is a deficit", examples=[-0.75],
    )
    temperature_anomaly: Optional[float] = Field(
        None, description="°C above the regional normal", examples=[2.5],
    )
    recent_rainfall: Optional[float] = Field(
        None, ge=0, description="Total rainfall over the last 30 days (mm)", examples=[15.0],
    )


class LandslideFactorsIn(BaseModel):
    slope: Optional[float] = Field(None, ge=0, le=90, description="Slope in degrees", examples=[38.0])
    aspect: Optional[float] = Field(
        None, ge=0, lt=360, description="Degrees clockwise from north", examples=[10.0],
    )
    rain_24h: Optional[float] = Field(None, ge=0, examples=[60.0])
    rain_72h: Optional[float] = Field(None, ge=0, examples=[160.0])
    rain_7d: Optional[float] = Field(None, ge=0, examples=[220.0])
    soil_moisture: Optional[float] = Field(None, ge=0, le=1, description="m³/m³", examples=[0.42])
    ndvi: Optional[float] = Field(None, ge=-1, le=1, examples=[0.3])
    historical_density: Optional[float] = Field(
        None, ge=0, description="Catalogued landslides per 100 km²", examples=[0.8],
    )
    recent_seismic_activity: bool = False


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ComponentScoreOut(BaseModel):
    name: str
    raw_score: float
    weight: float
    contribution: float
    label: str = ""
    available: bool = True


class RiskAssessmentOut(BaseModel):
    hazard: str
    risk_score: float = Field(..., ge=0, le=1)
    risk_level: str
    severity: Optional[str] = None
    component_scores: List[ComponentScoreOut]
    warnings: List[str]
    recommendations: List[str]
    confidence: float = Field(..., ge=0, le=1)
    data_quality: str
    factors: Dict[str, Any] = {}


class IndicesResponse(BaseModel):
    location: Dict[str, float]
    period: Dict[str, str]
    timescale: int
    data_quality: str
    spi: Dict[str, Any]
    spei: Dict[str, Any]
    pdsi: Dict[str, Any]
    heat_index: Optional[Dict[str, Any]] = None
    wind_chill: Optional[Dict[str, Any]] = None
    spi_series: List[Dict[str, Any]] = []
    spei_series: List[Dict[str, Any]] = []
    pdsi_series: List[Dict[str, Any]] = []
    heat_index_series: List[Dict[str, Any]] = []
    wind_chill_series: List[Dict[str, Any]] = []
    drought_analysis: Dict[str, Any] = {}


class EventsResponse(BaseModel):
    location: Dict[str, float]
    period: Dict[str, str]
    data_quality: str
    thresholds: Dict[str, Any]
    events: List[Dict[str, Any]]
    summary: Dict[str, Any]


class AlertsResponse(BaseModel):
    location: Dict[str, float]
    alerts: List[Dict[str, Any]]


class HistoricalResponse(BaseModel):
    location: Dict[str, float]
    years: int
    period: Dict[str, str]
    data_quality: str
    months: List[Dict[str, Any]]
    summary: Optional[Dict[str, Any]] = None
    baseline_daily: Optional[float] = None


class LandslideHistoryResponse(BaseModel):
    location: Dict[str, float]
    radius_km: float
    lookback_years: int
    data_quality: str
    total_events: int
    events_per_year: float
    events_by_trigger: Dict[str, int]
    events_by_size: Dict[str, int]
    fatality_total: int
    injury_total: int
    most_recent_event: Optional[Dict[str, Any]] = None
    high_risk_months: List[int]
