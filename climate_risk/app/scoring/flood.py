"""
Flood risk scorer.

    score = 0.5 · rainfall + 0.3 · elevation + 0.2 · slope      (clamped)

rainfall  = band(mean daily rain, last 7 d) + band(anomaly vs 30 d mean),
            capped at 1
elevation = low ground floods first
slope     = flat ground drains slowly
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Optional

from climate_risk.app.ingestion.models import ClimateSeries, DataQuality, TerrainProfile

from . import thresholds as th
from .models import (
    ComponentScore,
    Hazard,
    RiskAssessment,
    RiskLevel,
    confidence_from,
    quality_from,
    total_score,
)
from .windows import mean_or_none, window_values


@dataclass
class FloodFactors:
    recent_daily_rain: Optional[float] = None   # mm/day, mean of last 7 days
    rainfall_anomaly: Optional[float] = None    # fraction vs 30-day mean
    elevation: Optional[float] = None           # m
    slope: Optional[float] = None               # degrees


def flood_level(score: float) -> RiskLevel:
    return th.band_at_least(score, th.FLOOD_LEVEL_AT_LEAST, th.FLOOD_LEVEL_DEFAULT)


def rainfall_component(recent_daily_rain: Optional[float], anomaly: Optional[float]) -> ComponentScore:
    if recent_daily_rain is None and anomaly is None:
        return ComponentScore.missing("rainfall", th.FLOOD_WEIGHT_RAINFALL)
    raw = 0.0
    if recent_daily_rain is not None:
        raw += th.band_above(recent_daily_rain, th.FLOOD_RECENT_RAIN_ABOVE, 0.0)
    if anomaly is not None:
        raw += th.band_above(anomaly, th.FLOOD_RAIN_ANOMALY_ABOVE, 0.0)
    label = "heavy" if raw > th.FLOOD_HEAVY_RAIN_COMPONENT else "elevated" if raw > 0 else "normal"
    return ComponentScore("rainfall", th.clamp01(raw), th.FLOOD_WEIGHT_RAINFALL, label)


def elevation_component(elevation: Optional[float]) -> ComponentScore:
    if elevation is None:
        return ComponentScore.missing("elevation", th.FLOOD_WEIGHT_ELEVATION)
    raw = th.band_below(elevation, th.FLOOD_ELEVATION_BELOW, th.FLOOD_ELEVATION_DEFAULT)
    return ComponentScore("elevation", raw, th.FLOOD_WEIGHT_ELEVATION, f"{elevation:.0f} m")


def slope_component(slope: Optional[float]) -> ComponentScore:
    if slope is None:
        return ComponentScore.missing("slope", th.FLOOD_WEIGHT_SLOPE)
    raw = th.band_below(slope, th.FLOOD_SLOPE_BELOW, th.FLOOD_SLOPE_DEFAULT)
    return ComponentScore("slope", raw, th.FLOOD_WEIGHT_SLOPE, f"{slope:.1f}°")


def _recommendations(level: RiskLevel, rainfall: ComponentScore, factors: FloodFactors) -> List[str]:
    recs: List[str] = []
    if level in (RiskLevel.HIGH, RiskLevel.EXTREME):
        recs.append("High flood risk - monitor weather alerts closely")
        recs.append("Prepare an emergency evacuation plan")
        recs.append("Move valuable items to higher ground")
    if rainfall.available and rainfall.raw_score > th.FLOOD_HEAVY_RAIN_COMPONENT:
        recs.append("Heavy rainfall detected - avoid low-lying areas")
        recs.append("Check drainage systems for blockages")
    if factors.elevation is not None and factors.elevation < th.FLOOD_VALLEY_ELEVATION:
        recs.append("Location in flood-prone valley - extra caution advised")
    if not recs:
        recs.append("Flood risk is currently low")
        recs.append("Continue monitoring weather conditions")
    return recs


def _warnings(level: RiskLevel, score: float) -> List[str]:
    if level == RiskLevel.EXTREME:
        return [f"EXTREME FLOOD RISK ({score:.2f}) - flooding likely"]
    if level == RiskLevel.HIGH:
        return [f"HIGH FLOOD RISK ({score:.2f}) - flooding possible"]
    return []


def assess_flood(
    factors: FloodFactors,
    input_quality: DataQuality = DataQuality.OK,
) -> RiskAssessment:
    rainfall = rainfall_component(factors.recent_daily_rain, factors.rainfall_anomaly)
    components = [
        rainfall,
        elevation_component(factors.elevation),
        slope_component(factors.slope),
    ]
    score = total_score(components)
    level = flood_level(score)

    return RiskAssessment(
        hazard=Hazard.FLOOD,
        risk_score=score,
        risk_level=level,
        component_scores=components,
        warnings=_warnings(level, score),
        recommendations=_recommendations(level, rainfall, factors),
        confidence=confidence_from(components),
        data_quality=quality_from(components, input_quality),
        factors=asdict(factors),
    )


def flood_factors_from_series(
    precipitation: ClimateSeries,
    terrain: Optional[TerrainProfile] = None,
) -> FloodFactors:
    """Derive flood factors from the trailing 30 days of daily rain."""
    window = window_values(precipitation, th.FLOOD_WINDOW_DAYS)
    recent = window_values(precipitation, th.FLOOD_RECENT_DAYS)

    avg_recent = mean_or_none(recent)
    avg_total = mean_or_none(window)
    anomaly: Optional[float] = None
    if avg_recent is not None and avg_total is not None:
        anomaly = (avg_recent - avg_total) / avg_total if avg_total > 0 else 0.0

    return FloodFactors(
        recent_daily_rain=avg_recent,
        rainfall_anomaly=anomaly,
        elevation=terrain.elevation if terrain else None,
        slope=terrain.slope if terrain else None,
    )
