"""
Landslide risk scorer.

    score = 0.35 · slope + 0.30 · rainfall + 0.20 · soil + 0.15 · historical

slope       banded angle; ×1.1 on north-facing slopes steeper than 20°
rainfall    24 h + 72 h + 7 d bands, capped at 1
soil        volumetric moisture + 72 h rain boost, scaled by NDVI
historical  catalogued landslides per 100 km² within the search radius

Levels: ≥0.9 extreme, ≥0.75 very_high, ≥0.6 high, ≥0.4 moderate,
≥0.2 low, else very_low. Warning text is chosen from the level, so
"EXTREME" only ever accompanies an extreme score.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from climate_risk.app.ingestion.models import (
    ClimateSeries,
    DataQuality,
    LandslideCatalogEvent,
    TerrainProfile,
)
from climate_risk.app.spatial.radius_utils import Coordinate, density_per_100km2, within_radius

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
from .windows import sum_or_none, window_values


@dataclass
class LandslideFactors:
    slope: Optional[float] = None               # degrees
    aspect: Optional[float] = None              # degrees clockwise from north
    rain_24h: Optional[float] = None            # mm
    rain_72h: Optional[float] = None            # mm
    rain_7d: Optional[float] = None             # mm
    soil_moisture: Optional[float] = None       # m³/m³, 0–1
    ndvi: Optional[float] = None                # −1..1
    historical_density: Optional[float] = None  # events per 100 km²
    recent_seismic_activity: bool = False


@dataclass
class TriggerAssessment:
    triggered_by_rain: bool
    triggered_by_earthquake: bool
    trigger_risk: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def landslide_level(score: float) -> RiskLevel:
    return th.band_at_least(score, th.LANDSLIDE_LEVEL_AT_LEAST, th.LANDSLIDE_LEVEL_DEFAULT)


def is_north_facing(aspect: float) -> bool:
    return aspect >= th.LANDSLIDE_NORTH_ASPECT_FROM or aspect <= th.LANDSLIDE_NORTH_ASPECT_TO


def slope_component(slope: Optional[float], aspect: Optional[float]) -> ComponentScore:
    if slope is None:
        return ComponentScore.missing("slope", th.LANDSLIDE_WEIGHT_SLOPE)
    raw = th.band_at_least(slope, th.LANDSLIDE_SLOPE_AT_LEAST, th.LANDSLIDE_SLOPE_DEFAULT)
    if aspect is not None and slope > th.LANDSLIDE_NORTH_ASPECT_MIN_SLOPE and is_north_facing(aspect):
        raw *= th.LANDSLIDE_NORTH_ASPECT_FACTOR
    return ComponentScore("slope", th.clamp01(raw), th.LANDSLIDE_WEIGHT_SLOPE, f"{slope:.1f}°")


def rainfall_component(
    rain_24h: Optional[float], rain_72h: Optional[float], rain_7d: Optional[float],
) -> ComponentScore:
    if rain_24h is None and rain_72h is None and rain_7d is None:
        return ComponentScore.missing("rainfall", th.LANDSLIDE_WEIGHT_RAINFALL)
    raw = 0.0
    if rain_24h is not None:
        raw += th.band_above(rain_24h, th.LANDSLIDE_RAIN_24H_ABOVE, 0.0)
    if rain_72h is not None:
        raw += th.band_above(rain_72h, th.LANDSLIDE_RAIN_72H_ABOVE, 0.0)
    if rain_7d is not None:
        raw += th.band_above(rain_7d, th.LANDSLIDE_RAIN_7D_ABOVE, 0.0)
    return ComponentScore("rainfall", th.clamp01(raw), th.LANDSLIDE_WEIGHT_RAINFALL)


def soil_component(
    soil_moisture: Optional[float], rain_72h: Optional[float], ndvi: Optional[float],
) -> ComponentScore:
    if soil_moisture is None:
        return ComponentScore.missing("soil", th.LANDSLIDE_WEIGHT_SOIL)
    raw = soil_moisture
    if rain_72h is not None:
        raw += th.band_above(rain_72h, th.LANDSLIDE_SOIL_RAIN_BOOST_ABOVE, 0.0)
    if ndvi is not None:
        if ndvi > th.LANDSLIDE_NDVI_DENSE:
            raw *= th.LANDSLIDE_NDVI_DENSE_FACTOR
        elif ndvi < th.LANDSLIDE_NDVI_BARE:
            raw *= th.LANDSLIDE_NDVI_BARE_FACTOR
    return ComponentScore("soil", th.clamp01(raw), th.LANDSLIDE_WEIGHT_SOIL, f"{soil_moisture:.2f}")


def historical_component(density: Optional[float]) -> ComponentScore:
    if density is None:
        return ComponentScore.missing("historical", th.LANDSLIDE_WEIGHT_HISTORICAL)
    if density <= 0:
        raw = th.LANDSLIDE_DENSITY_NONE
    else:
        raw = th.band_at_least(density, th.LANDSLIDE_DENSITY_AT_LEAST, th.LANDSLIDE_DENSITY_ANY)
    return ComponentScore("historical", raw, th.LANDSLIDE_WEIGHT_HISTORICAL, f"{density:.2f}/100km²")


def assess_trigger(rain_72h: Optional[float], recent_seismic_activity: bool = False) -> TriggerAssessment:
    """Is a landslide currently being triggered, and how strongly?"""
    risk = 0.0
    if rain_72h is not None:
        risk += th.band_above(rain_72h, th.LANDSLIDE_TRIGGER_72H_ABOVE, 0.0)
    if recent_seismic_activity:
        risk += th.LANDSLIDE_TRIGGER_SEISMIC
    return TriggerAssessment(
        triggered_by_rain=rain_72h is not None and rain_72h > th.LANDSLIDE_TRIGGER_RAIN_72H,
        triggered_by_earthquake=recent_seismic_activity,
        trigger_risk=th.clamp01(risk),
    )


_LEVEL_MESSAGES = {
    RiskLevel.EXTREME: (
        "EXTREME LANDSLIDE RISK - immediate action required",
        [
            "EVACUATE if living on or below steep slopes",
            "Avoid hillside roads and paths",
            "Monitor for cracks in ground, tilting trees, or unusual water flow",
            "Contact local authorities if landslide signs are observed",
        ],
    ),
    RiskLevel.VERY_HIGH: (
        "VERY HIGH LANDSLIDE RISK - be ready to evacuate",
        [
            "Prepare to evacuate if living on or below steep slopes",
            "Avoid hillside roads and paths",
            "Monitor for cracks in ground, tilting trees, or unusual water flow",
        ],
    ),
    RiskLevel.HIGH: (
        "HIGH LANDSLIDE RISK - exercise extreme caution",
        [
            "Avoid steep slopes and unstable hillsides",
            "Prepare evacuation plan if living in hilly areas",
            "Monitor weather forecasts for additional rainfall",
        ],
    ),
    RiskLevel.MODERATE: (
        "MODERATE LANDSLIDE RISK - stay alert",
        [
            "Be aware of surroundings in hilly terrain",
            "Avoid construction on steep slopes during rainy season",
            "Ensure proper drainage around buildings on slopes",
        ],
    ),
    RiskLevel.LOW: (
        None,
        [
            "Monitor conditions if living in hilly areas",
            "Maintain vegetation cover on slopes for stability",
        ],
    ),
    RiskLevel.VERY_LOW: (None, ["Landslide risk is currently very low"]),
}


def _messages(
    level: RiskLevel, factors: LandslideFactors, trigger: TriggerAssessment,
) -> tuple[List[str], List[str]]:
    headline, recs = _LEVEL_MESSAGES[level]
    warnings: List[str] = [headline] if headline else []
    recommendations = list(recs)

    if level in (RiskLevel.EXTREME, RiskLevel.VERY_HIGH):
        if factors.slope is not None and factors.slope > th.LANDSLIDE_STEEP_SLOPE_WARNING:
            warnings.append(f"Very steep slope ({factors.slope:.1f}°) - high instability")
    if trigger.triggered_by_rain:
        warnings.append(
            f"Heavy rainfall ({factors.rain_72h:.0f}mm/72h) - landslide trigger threshold exceeded"
        )
    if trigger.triggered_by_earthquake:
        warnings.append("Recent seismic activity - slopes may be destabilized")
    if factors.historical_density is not None and factors.historical_density > th.LANDSLIDE_DENSITY_WARNING:
        warnings.append(
            f"{factors.historical_density:.1f} landslides per 100km² historically - high-risk zone"
        )
        recommendations.append("Consult historical landslide maps before development")
    if factors.soil_moisture is not None and factors.soil_moisture > th.LANDSLIDE_SATURATION_WARNING:
        warnings.append("High soil saturation - reduced slope stability")
    return warnings, recommendations


def assess_landslide(
    factors: LandslideFactors,
    input_quality: DataQuality = DataQuality.OK,
) -> RiskAssessment:
    components = [
        slope_component(factors.slope, factors.aspect),
        rainfall_component(factors.rain_24h, factors.rain_72h, factors.rain_7d),
        soil_component(factors.soil_moisture, factors.rain_72h, factors.ndvi),
        historical_component(factors.historical_density),
    ]
    score = total_score(components)
    level = landslide_level(score)
    trigger = assess_trigger(factors.rain_72h, factors.recent_seismic_activity)
    warnings, recommendations = _messages(level, factors, trigger)

    details = asdict(factors)
    details["trigger"] = trigger.to_dict()
    return RiskAssessment(
        hazard=Hazard.LANDSLIDE,
        risk_score=score,
        risk_level=level,
        component_scores=components,
        warnings=warnings,
        recommendations=recommendations,
        confidence=confidence_from(components),
        data_quality=quality_from(components, input_quality),
        factors=details,
    )


def catalog_density(
    latitude: float,
    longitude: float,
    events: Sequence[LandslideCatalogEvent],
    radius_km: float,
) -> float:
    """Catalogued landslides per 100 km² within ``radius_km`` of the point."""
    nearby = within_radius(Coordinate(latitude, longitude), events, radius_km)
    return density_per_100km2(len(nearby), radius_km)


def landslide_factors_from_series(
    precipitation: ClimateSeries,
    soil_moisture: Optional[ClimateSeries] = None,
    terrain: Optional[TerrainProfile] = None,
    historical_density: Optional[float] = None,
    ndvi: Optional[float] = None,
    recent_seismic_activity: bool = False,
) -> LandslideFactors:
    soil_value: Optional[float] = None
    if soil_moisture is not None and soil_moisture.is_available:
        soil_value = soil_moisture.points[-1].value

    return LandslideFactors(
        slope=terrain.slope if terrain else None,
        aspect=terrain.aspect if terrain else None,
        rain_24h=sum_or_none(window_values(precipitation, 1)),
        rain_72h=sum_or_none(window_values(precipitation, 3)),
        rain_7d=sum_or_none(window_values(precipitation, 7)),
        soil_moisture=soil_value,
        ndvi=ndvi,
        historical_density=historical_density,
        recent_seismic_activity=recent_seismic_activity,
    )
