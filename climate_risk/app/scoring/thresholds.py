"""
Hazard band tables — every scoring threshold in one place.

Each table is a tuple of ``(bound, value)`` rows checked top-down; the
first matching row wins. The comparison is part of the table's name:

    *_ABOVE     value >  bound
    *_AT_LEAST  value >= bound
    *_BELOW     value <  bound

Scorers and their warning/recommendation text read the same tables, so a
message can never disagree with the score it accompanies.
"""

from __future__ import annotations

from typing import Sequence, Tuple, TypeVar

from .models import DroughtSeverity, RiskLevel

T = TypeVar("T")
Bands = Sequence[Tuple[float, T]]


def band_above(value: float, bands: Bands, default: T) -> T:
    for bound, result in bands:
        if value > bound:
            return result
    return default


def band_at_least(value: float, bands: Bands, default: T) -> T:
    for bound, result in bands:
        if value >= bound:
            return result
    return default


def band_below(value: float, bands: Bands, default: T) -> T:
    for bound, result in bands:
        if value < bound:
            return result
    return default


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


# ═══════════════════════════════════════════════════════════════════════════
# Flood
# ═══════════════════════════════════════════════════════════════════════════

FLOOD_WEIGHT_RAINFALL = 0.5
FLOOD_WEIGHT_ELEVATION = 0.3
FLOOD_WEIGHT_SLOPE = 0.2

FLOOD_WINDOW_DAYS = 30
FLOOD_RECENT_DAYS = 7

# mean daily rain over the last 7 days (mm/day)
FLOOD_RECENT_RAIN_ABOVE = ((25.0, 0.6), (15.0, 0.4), (10.0, 0.25), (5.0, 0.1))
# (recent mean − window mean) / window mean
FLOOD_RAIN_ANOMALY_ABOVE = ((0.8, 0.4), (0.5, 0.3), (0.3, 0.2), (0.1, 0.1))
# metres above sea level
FLOOD_ELEVATION_BELOW = ((1300.0, 0.9), (1450.0, 0.7), (1600.0, 0.5), (1800.0, 0.3), (2200.0, 0.15))
FLOOD_ELEVATION_DEFAULT = 0.05
# degrees
FLOOD_SLOPE_BELOW = ((1.0, 1.0), (3.0, 0.8), (6.0, 0.5), (10.0, 0.3), (15.0, 0.15))
FLOOD_SLOPE_DEFAULT = 0.05

FLOOD_LEVEL_AT_LEAST = ((0.75, RiskLevel.EXTREME), (0.5, RiskLevel.HIGH), (0.25, RiskLevel.MEDIUM))
FLOOD_LEVEL_DEFAULT = RiskLevel.LOW

FLOOD_HEAVY_RAIN_COMPONENT = 0.7
FLOOD_VALLEY_ELEVATION = 1400.0


# ═══════════════════════════════════════════════════════════════════════════
# Drought
# ═══════════════════════════════════════════════════════════════════════════

# Band values are already weighted; the weight is each factor's maximum
DROUGHT_WEIGHT_PRECIP_ANOMALY = 0.60
DROUGHT_WEIGHT_TEMP_ANOMALY = 0.25
DROUGHT_WEIGHT_RECENT_RAIN = 0.15

DROUGHT_RECENT_DAYS = 30
DROUGHT_BASELINE_DAYS = 60
DROUGHT_NORMAL_TEMPERATURE_C = 22.5

# (recent − expected) / expected
DROUGHT_PRECIP_ANOMALY_BELOW = ((-0.7, 0.60), (-0.5, 0.48), (-0.3, 0.36), (-0.15, 0.24), (-0.05, 0.12))
# °C above the regional normal
DROUGHT_TEMP_ANOMALY_ABOVE = ((4.0, 0.25), (3.0, 0.20), (2.0, 0.15), (1.0, 0.10), (0.5, 0.05))
# total mm over the last 30 days
DROUGHT_RECENT_RAIN_BELOW = ((20.0, 0.15), (40.0, 0.12), (60.0, 0.09), (80.0, 0.06), (100.0, 0.03))

DROUGHT_LEVEL_AT_LEAST = ((0.75, RiskLevel.EXTREME), (0.5, RiskLevel.HIGH), (0.25, RiskLevel.MEDIUM))
DROUGHT_LEVEL_DEFAULT = RiskLevel.LOW

DROUGHT_SEVERITY_AT_LEAST = (
    (0.8, DroughtSeverity.EXTREME),
    (0.6, DroughtSeverity.SEVERE),
    (0.4, DroughtSeverity.MODERATE),
    (0.2, DroughtSeverity.MILD),
)
DROUGHT_SEVERITY_DEFAULT = DroughtSeverity.NONE


# ═══════════════════════════════════════════════════════════════════════════
# Landslide
# ═══════════════════════════════════════════════════════════════════════════

LANDSLIDE_WEIGHT_SLOPE = 0.35
LANDSLIDE_WEIGHT_RAINFALL = 0.30
LANDSLIDE_WEIGHT_SOIL = 0.20
LANDSLIDE_WEIGHT_HISTORICAL = 0.15

LANDSLIDE_SLOPE_AT_LEAST = ((45.0, 1.0), (35.0, 0.8), (25.0, 0.6), (15.0, 0.35), (10.0, 0.15))
LANDSLIDE_SLOPE_DEFAULT = 0.05
# north-facing slopes stay wetter
LANDSLIDE_NORTH_ASPECT_FROM = 315.0
LANDSLIDE_NORTH_ASPECT_TO = 45.0
LANDSLIDE_NORTH_ASPECT_MIN_SLOPE = 20.0
LANDSLIDE_NORTH_ASPECT_FACTOR = 1.1

LANDSLIDE_RAIN_24H_ABOVE = ((100.0, 0.4), (75.0, 0.3), (50.0, 0.2), (30.0, 0.1))
LANDSLIDE_RAIN_72H_ABOVE = ((200.0, 0.5), (150.0, 0.4), (100.0, 0.3), (75.0, 0.2))
LANDSLIDE_RAIN_7D_ABOVE = ((300.0, 0.3), (200.0, 0.2), (150.0, 0.1))

# added to volumetric soil moisture, keyed on 72 h rain
LANDSLIDE_SOIL_RAIN_BOOST_ABOVE = ((100.0, 0.3), (50.0, 0.2))
LANDSLIDE_NDVI_DENSE = 0.6
LANDSLIDE_NDVI_DENSE_FACTOR = 0.8
LANDSLIDE_NDVI_BARE = 0.2
LANDSLIDE_NDVI_BARE_FACTOR = 1.2

# catalogued events per 100 km² within the search radius
LANDSLIDE_DENSITY_AT_LEAST = ((2.0, 1.0), (1.0, 0.75), (0.5, 0.5), (0.2, 0.3))
LANDSLIDE_DENSITY_ANY = 0.15
LANDSLIDE_DENSITY_NONE = 0.05

LANDSLIDE_LEVEL_AT_LEAST = (
    (0.9, RiskLevel.EXTREME),
    (0.75, RiskLevel.VERY_HIGH),
    (0.6, RiskLevel.HIGH),
    (0.4, RiskLevel.MODERATE),
    (0.2, RiskLevel.LOW),
)
LANDSLIDE_LEVEL_DEFAULT = RiskLevel.VERY_LOW

# rainfall trigger on 72 h totals
LANDSLIDE_TRIGGER_72H_ABOVE = ((150.0, 0.6), (100.0, 0.4), (75.0, 0.2))
LANDSLIDE_TRIGGER_RAIN_72H = 100.0
LANDSLIDE_TRIGGER_SEISMIC = 0.5

LANDSLIDE_STEEP_SLOPE_WARNING = 30.0
LANDSLIDE_DENSITY_WARNING = 0.5
LANDSLIDE_SATURATION_WARNING = 0.7


# ═══════════════════════════════════════════════════════════════════════════
# Monthly historical scores (0–100 points)
# ═══════════════════════════════════════════════════════════════════════════

MONTHLY_SCORE_CAP = 100.0
MONTHLY_HIGH_RISK_SCORE = 60.0

MONTHLY_FLOOD_EXTREME_DAY_MM = 50.0
MONTHLY_FLOOD_POINTS_PER_EXTREME_DAY = 20.0
MONTHLY_FLOOD_RAINY_DAY_MM = 5.0
MONTHLY_FLOOD_RAINY_RUN_DAYS = 5
MONTHLY_FLOOD_RAINY_RUN_POINTS = 25.0
MONTHLY_FLOOD_MAX_DAILY_ABOVE = ((80.0, 30.0), (60.0, 20.0), (40.0, 10.0))
MONTHLY_FLOOD_TOTAL_ABOVE = ((300.0, 25.0), (200.0, 15.0))

MONTHLY_DROUGHT_DRY_DAY_MM = 1.0
MONTHLY_DROUGHT_DEFAULT_BASELINE_MM = 3.0
MONTHLY_DROUGHT_DEFICIT_PCT_ABOVE = ((50.0, 35.0), (30.0, 25.0), (15.0, 15.0))
MONTHLY_DROUGHT_DRY_RUN_ABOVE = ((20, 30.0), (14, 20.0), (7, 10.0))
MONTHLY_DROUGHT_DRY_DAYS_ABOVE = ((20, 25.0), (15, 15.0))
MONTHLY_DROUGHT_LOW_TOTAL_MM = 30.0
MONTHLY_DROUGHT_LOW_TOTAL_POINTS = 10.0

MONTHLY_RAINY_DAY_MM = 1.0
