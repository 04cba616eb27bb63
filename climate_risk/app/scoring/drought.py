"""
Drought risk scorer.

Three additive factors, each already scaled to its maximum share:

    precipitation anomaly   ≤ 0.60   recent 30 d vs expected from prior 60 d
    temperature anomaly     ≤ 0.25   recent mean vs regional normal (22.5 °C)
    recent rainfall         ≤ 0.15   absolute 30 d total

Levels: ≥0.75 extreme, ≥0.5 high, ≥0.25 medium, else low.
Severity (finer scale): ≥0.8 extreme, ≥0.6 severe, ≥0.4 moderate,
≥0.2 mild, else none.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Optional

from climate_risk.app.core.config import settings
from climate_risk.app.ingestion.models import ClimateSeries, DataQuality

from . import thresholds as th
from .models import (
    ComponentScore,
    DroughtSeverity,
    Hazard,
    RiskAssessment,
    RiskLevel,
    confidence_from,
    quality_from,
    total_score,
)
from .windows import mean_or_none, sum_or_none, window_values


@dataclass
class DroughtFactors:
    precipitation_anomaly: Optional[float] = None   # fraction, negative = deficit
    temperature_anomaly: Optional[float] = None     # °C above normal
    recent_rainfall: Optional[float] = None         # mm over 30 days


def drought_level(score: float) -> RiskLevel:
    return th.band_at_least(score, th.DROUGHT_LEVEL_AT_LEAST, th.DROUGHT_LEVEL_DEFAULT)


def drought_severity(score: float) -> DroughtSeverity:
    return th.band_at_least(score, th.DROUGHT_SEVERITY_AT_LEAST, th.DROUGHT_SEVERITY_DEFAULT)


def _component(name: str, value: Optional[float], weight: float, band) -> ComponentScore:
    if value is None:
        return ComponentScore.missing(name, weight)
    contribution = band(value)
    return ComponentScore(name, contribution / weight, weight, f"{value:.2f}")


def _warnings(level: RiskLevel, factors: DroughtFactors) -> List[str]:
    warnings: List[str] = []
    if level == RiskLevel.EXTREME:
        warnings.append("EXTREME DROUGHT RISK - severe water shortage likely")
    elif level == RiskLevel.HIGH:
        warnings.append("HIGH DROUGHT RISK - significant rainfall deficit")
    if factors.precipitation_anomaly is not None and factors.precipitation_anomaly < th.DROUGHT_PRECIP_ANOMALY_BELOW[0][0]:
        warnings.append(
            f"Rainfall {abs(factors.precipitation_anomaly) * 100:.0f}% below expected over the last 30 days"
        )
    return warnings


def _recommendations(level: RiskLevel) -> List[str]:
    if level == RiskLevel.EXTREME:
        return [
            "Implement strict water conservation measures",
            "Prioritise water for drinking and livestock",
            "Coordinate with local authorities on water rationing",
        ]
    if level == RiskLevel.HIGH:
        return [
            "Implement water conservation measures",
            "Monitor crop conditions closely",
            "Consider irrigation if available",
        ]
    if level == RiskLevel.MEDIUM:
        return ["Monitor rainfall and soil moisture trends", "Plan for possible water restrictions"]
    return ["No significant drought risk - continue routine monitoring"]


def assess_drought(
    factors: DroughtFactors,
    input_quality: DataQuality = DataQuality.OK,
) -> RiskAssessment:
    components = [
        _component(
            "precipitation_anomaly", factors.precipitation_anomaly, th.DROUGHT_WEIGHT_PRECIP_ANOMALY,
            lambda v: th.band_below(v, th.DROUGHT_PRECIP_ANOMALY_BELOW, 0.0),
        ),
        _component(
            "temperature_anomaly", factors.temperature_anomaly, th.DROUGHT_WEIGHT_TEMP_ANOMALY,
            lambda v: th.band_above(v, th.DROUGHT_TEMP_ANOMALY_ABOVE, 0.0),
        ),
        _component(
            "recent_rainfall", factors.recent_rainfall, th.DROUGHT_WEIGHT_RECENT_RAIN,
            lambda v: th.band_below(v, th.DROUGHT_RECENT_RAIN_BELOW, 0.0),
        ),
    ]
    score = total_score(components)
    level = drought_level(score)

    return RiskAssessment(
        hazard=Hazard.DROUGHT,
        risk_score=score,
        risk_level=level,
        severity=drought_severity(score),
        component_scores=components,
        warnings=_warnings(level, factors),
        recommendations=_recommendations(level),
        confidence=confidence_from(components),
        data_quality=quality_from(components, input_quality),
        factors=asdict(factors),
    )


def drought_factors_from_series(
    precipitation: ClimateSeries,
    temperature: Optional[ClimateSeries] = None,
    normal_temperature: float = settings.NORMAL_TEMPERATURE_C,
) -> DroughtFactors:
    """
    Recent window: last 30 days. Baseline: the 60 days before it, whose
    daily mean × 30 is the expected recent total.
    """
    recent = window_values(precipitation, th.DROUGHT_RECENT_DAYS)
    baseline = window_values(
        precipitation, th.DROUGHT_BASELINE_DAYS, skip_days=th.DROUGHT_RECENT_DAYS,
    )

    recent_total = sum_or_none(recent)
    anomaly: Optional[float] = None
    baseline_daily = mean_or_none(baseline)
    if recent_total is not None and baseline_daily is not None:
        expected = baseline_daily * th.DROUGHT_RECENT_DAYS
        anomaly = (recent_total - expected) / expected if expected > 0 else 0.0

    temp_anomaly: Optional[float] = None
    if temperature is not None and temperature.is_available:
        recent_temp = mean_or_none(window_values(temperature, th.DROUGHT_RECENT_DAYS))
        if recent_temp is not None:
            temp_anomaly = recent_temp - normal_temperature

    return DroughtFactors(
        precipitation_anomaly=anomaly,
        temperature_anomaly=temp_anomaly,
        recent_rainfall=recent_total,
    )
