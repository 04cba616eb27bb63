"""
Standardized climate indices.

═══════════════════════════════════════════════════════════════════════════
INDICES
═══════════════════════════════════════════════════════════════════════════

SPI  (Standardized Precipitation Index)
    z-score of the latest sample against the trailing ``timescale`` window:
        SPI = (x_latest − μ_window) / σ_window      (population σ)
    This is a z-score approximation; no gamma fit is performed.

SPEI (Standardized Precipitation-Evapotranspiration Index)
    Same z-score over the climatic water balance D = P − PET.

PDSI (simplified Palmer)
    clamp(mean(P − PET) / 10, −4, 4). A coarse water-balance proxy, not
    the Palmer recursion; every result says so in its description.

Heat index
    Rothfusz regression on °F and %RH (NWS).

Wind chill
    NWS 2001 formula on °F and mph, defined for wind ≥ 3 mph:
        WC = 35.74 + 0.6215·T − 35.75·V^0.16 + 0.4275·T·V^0.16

═══════════════════════════════════════════════════════════════════════════
DEGENERATE INPUT
═══════════════════════════════════════════════════════════════════════════

Nothing here raises for bad data. Too few valid samples yields status
``insufficient_data``; a window with zero spread yields ``no_variability``.
Both carry value 0.0 so NaN and ±Infinity never leave this module.
Missing samples (None, NaN, ±Inf) are skipped, never treated as zero.
═══════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from climate_risk.app.ingestion.models import ClimateSeries, SeriesPoint


class IndexStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    NO_VARIABILITY = "no_variability"


class IndexCategory(str, Enum):
    # SPI / SPEI / PDSI wet-dry scale
    EXTREMELY_WET = "Extremely Wet"
    VERY_WET = "Very Wet"
    MODERATELY_WET = "Moderately Wet"
    SLIGHTLY_WET = "Slightly Wet"
    NEAR_NORMAL = "Near Normal"
    MODERATELY_DRY = "Moderately Dry"
    SEVERELY_DRY = "Severely Dry"
    EXTREMELY_DRY = "Extremely Dry"
    MILD_DROUGHT = "Mild Drought"
    MODERATE_DROUGHT = "Moderate Drought"
    SEVERE_DROUGHT = "Severe Drought"
    EXTREME_DROUGHT = "Extreme Drought"
    # Heat index / wind chill
    EXTREME_DANGER = "Extreme Danger"
    DANGER = "Danger"
    EXTREME_CAUTION = "Extreme Caution"
    CAUTION = "Caution"
    COMFORTABLE = "Comfortable"
    HIGH_RISK = "High Risk"
    MODERATE_RISK = "Moderate Risk"
    LOW_RISK = "Low Risk"
    NO_RISK = "No Risk"
    NO_WIND_CHILL = "No Wind Chill"
    # Degenerate input
    INSUFFICIENT_DATA = "Insufficient Data"
    NO_VARIABILITY = "No Variability"


C = IndexCategory

# (lower bound, category), checked top-down with value >= bound
SPI_BANDS: Tuple[Tuple[float, IndexCategory], ...] = (
    (2.0, C.EXTREMELY_WET),
    (1.5, C.VERY_WET),
    (1.0, C.MODERATELY_WET),
    (-1.0, C.NEAR_NORMAL),
    (-1.5, C.MODERATELY_DRY),
    (-2.0, C.SEVERELY_DRY),
)

PDSI_BANDS: Tuple[Tuple[float, IndexCategory], ...] = (
    (4.0, C.EXTREMELY_WET),
    (2.0, C.MODERATELY_WET),
    (1.0, C.SLIGHTLY_WET),
    (-1.0, C.NEAR_NORMAL),
    (-2.0, C.MILD_DROUGHT),
    (-3.0, C.MODERATE_DROUGHT),
)
PDSI_LIMIT = 4.0
PDSI_SCALE = 10.0

HEAT_INDEX_BANDS: Tuple[Tuple[float, IndexCategory], ...] = (
    (130.0, C.EXTREME_DANGER),
    (105.0, C.DANGER),
    (90.0, C.EXTREME_CAUTION),
    (80.0, C.CAUTION),
)

# (upper bound, category), checked top-down with value <= bound
WIND_CHILL_BANDS: Tuple[Tuple[float, IndexCategory], ...] = (
    (-50.0, C.EXTREME_DANGER),
    (-30.0, C.DANGER),
    (-20.0, C.HIGH_RISK),
    (-10.0, C.MODERATE_RISK),
    (0.0, C.LOW_RISK),
)
WIND_CHILL_MIN_WIND_MPH = 3.0

# Thresholds for the derived series
HEAT_INDEX_MIN_TEMP_F = 80.0
HEAT_INDEX_MIN_HUMIDITY = 40.0
WIND_CHILL_MAX_TEMP_F = 50.0
MS_TO_MPH = 2.236936

ZERO_STD_TOLERANCE = 1e-9

WET_DRY_DESCRIPTIONS: Dict[IndexCategory, str] = {
    C.EXTREMELY_WET: "Extremely wet conditions",
    C.VERY_WET: "Very wet conditions",
    C.MODERATELY_WET: "Moderately wet conditions",
    C.SLIGHTLY_WET: "Slightly wet conditions",
    C.NEAR_NORMAL: "Near normal conditions",
    C.MODERATELY_DRY: "Moderately dry conditions",
    C.SEVERELY_DRY: "Severely dry conditions",
    C.EXTREMELY_DRY: "Extremely dry conditions",
    C.MILD_DROUGHT: "Mild drought conditions",
    C.MODERATE_DROUGHT: "Moderate drought conditions",
    C.SEVERE_DROUGHT: "Severe drought conditions",
    C.EXTREME_DROUGHT: "Extreme drought conditions",
}

HEAT_DESCRIPTIONS: Dict[IndexCategory, str] = {
    C.EXTREME_DANGER: "Heat stroke highly likely",
    C.DANGER: "Heat stroke likely, sunstroke possible",
    C.EXTREME_CAUTION: "Heat stroke possible with prolonged exposure",
    C.CAUTION: "Fatigue possible with prolonged exposure",
    C.COMFORTABLE: "Comfortable conditions",
}

COLD_DESCRIPTIONS: Dict[IndexCategory, str] = {
    C.EXTREME_DANGER: "Frostbite in less than 5 minutes",
    C.DANGER: "Frostbite in 10-30 minutes",
    C.HIGH_RISK: "Frostbite in 30 minutes",
    C.MODERATE_RISK: "Frostbite possible in 30 minutes",
    C.LOW_RISK: "Frostbite unlikely",
    C.NO_RISK: "No frostbite risk",
    C.NO_WIND_CHILL: "Wind too light for wind chill",
}


@dataclass
class IndexResult:
    value: float
    category: IndexCategory
    description: str
    status: IndexStatus = IndexStatus.OK
    feels_like: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == IndexStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "value": round(self.value, 3),
            "category": self.category.value,
            "description": self.description,
            "status": self.status.value,
        }
        if self.feels_like is not None:
            d["feels_like"] = round(self.feels_like, 2)
        return d


@dataclass
class IndexSeriesEntry:
    date: str
    value: float
    category: IndexCategory
    description: str
    timescale: int
    status: IndexStatus = IndexStatus.OK
    feels_like: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "date": self.date,
            "value": round(self.value, 3),
            "category": self.category.value,
            "description": self.description,
            "timescale": self.timescale,
            "status": self.status.value,
        }
        if self.feels_like is not None:
            d["feels_like"] = round(self.feels_like, 2)
        return d


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def _valid_values(values: Iterable[Any]) -> List[float]:
    out: List[float] = []
    for raw in values:
        v = _finite(raw)
        if v is not None:
            out.append(v)
    return out


def _mean_and_pstdev(window: Sequence[float]) -> Tuple[float, float]:
    n = len(window)
    mean = math.fsum(window) / n
    variance = math.fsum((x - mean) ** 2 for x in window) / n
    return mean, math.sqrt(variance)


def _band_at_least(value: float, bands, default: IndexCategory) -> IndexCategory:
    for bound, category in bands:
        if value >= bound:
            return category
    return default


def _band_at_most(value: float, bands, default: IndexCategory) -> IndexCategory:
    for bound, category in bands:
        if value <= bound:
            return category
    return default


def _insufficient(label: str) -> IndexResult:
    return IndexResult(0.0, C.INSUFFICIENT_DATA, f"Not enough data to compute {label}",
                       IndexStatus.INSUFFICIENT_DATA)


def _standardize(values: List[float], timescale: int, label: str, suffix: str = "") -> IndexResult:
    if timescale < 1 or len(values) < timescale:
        return _insufficient(label)

    window = values[-timescale:]
    mean, std = _mean_and_pstdev(window)
    if math.isclose(std, 0.0, abs_tol=ZERO_STD_TOLERANCE):
        return IndexResult(0.0, C.NO_VARIABILITY,
                           f"No variability in the {timescale}-sample window",
                           IndexStatus.NO_VARIABILITY)

    z = (window[-1] - mean) / std
    category = _band_at_least(z, SPI_BANDS, C.EXTREMELY_DRY)
    return IndexResult(z, category, WET_DRY_DESCRIPTIONS[category] + suffix)


# ═══════════════════════════════════════════════════════════════════════════
# Point indices
# ═══════════════════════════════════════════════════════════════════════════

def spi(values: Sequence[Any], timescale: int = 3) -> IndexResult:
    """SPI of the latest valid sample over the trailing ``timescale`` samples."""
    return _standardize(_valid_values(values), timescale, "SPI")


def spei(precipitation: Sequence[Any], pet: Sequence[Any], timescale: int = 3) -> IndexResult:
    """
    SPEI over P − PET. The two inputs are paired by position and must have
    the same length; pairs with a missing side are skipped.
    """
    if len(precipitation) != len(pet) or not precipitation:
        return _insufficient("SPEI")

    balance: List[float] = []
    for p_raw, e_raw in zip(precipitation, pet):
        p, e = _finite(p_raw), _finite(e_raw)
        if p is not None and e is not None:
            balance.append(p - e)
    return _standardize(balance, timescale, "SPEI", " considering evapotranspiration")


def pdsi(
    precipitation: Sequence[Any],
    pet: Sequence[Any],
    temperature: Optional[Sequence[Any]] = None,
) -> IndexResult:
    """
    Simplified PDSI from the mean water balance. ``temperature`` is accepted
    for interface parity with the full index and does not enter the
    approximation.
    """
    if len(precipitation) != len(pet) or not precipitation:
        return _insufficient("PDSI")

    balance: List[float] = []
    for p_raw, e_raw in zip(precipitation, pet):
        p, e = _finite(p_raw), _finite(e_raw)
        if p is not None and e is not None:
            balance.append(p - e)
    if not balance:
        return _insufficient("PDSI")

    value = max(-PDSI_LIMIT, min(PDSI_LIMIT, math.fsum(balance) / len(balance) / PDSI_SCALE))
    # The clamp floor itself is the extreme band
    if value <= -PDSI_LIMIT:
        category = C.EXTREME_DROUGHT
    else:
        category = _band_at_least(value, PDSI_BANDS, C.SEVERE_DROUGHT)
    return IndexResult(value, category,
                       WET_DRY_DESCRIPTIONS[category] + " (simplified water-balance approximation)")


def heat_index(temperature_f: float, humidity: float) -> IndexResult:
    """Rothfusz heat index; ``feels_like`` repeats the value in °F."""
    t, rh = _finite(temperature_f), _finite(humidity)
    if t is None or rh is None:
        return _insufficient("heat index")

    hi = (
        -42.379
        + 2.04901523 * t
        + 10.14333127 * rh
        - 0.22475541 * t * rh
        - 6.83783e-3 * t * t
        - 5.481717e-2 * rh * rh
        + 1.22874e-3 * t * t * rh
        + 8.5282e-4 * t * rh * rh
        - 1.99e-6 * t * t * rh * rh
    )
    category = _band_at_least(hi, HEAT_INDEX_BANDS, C.COMFORTABLE)
    return IndexResult(hi, category, HEAT_DESCRIPTIONS[category], feels_like=hi)


def wind_chill(temperature_f: float, wind_mph: float) -> IndexResult:
    """NWS wind chill. Below 3 mph the ambient temperature is returned."""
    t, v = _finite(temperature_f), _finite(wind_mph)
    if t is None or v is None:
        return _insufficient("wind chill")

    if v < WIND_CHILL_MIN_WIND_MPH:
        return IndexResult(t, C.NO_WIND_CHILL, COLD_DESCRIPTIONS[C.NO_WIND_CHILL], feels_like=t)

    v16 = v ** 0.16
    wc = 35.74 + 0.6215 * t - 35.75 * v16 + 0.4275 * t * v16
    category = _band_at_most(wc, WIND_CHILL_BANDS, C.NO_RISK)
    return IndexResult(wc, category, COLD_DESCRIPTIONS[category], feels_like=wc)


def celsius_to_fahrenheit(c: float) -> float:
    return c * 9.0 / 5.0 + 32.0


def fahrenheit_to_celsius(f: float) -> float:
    return (f - 32.0) * 5.0 / 9.0


# ═══════════════════════════════════════════════════════════════════════════
# Index series
# ═══════════════════════════════════════════════════════════════════════════

def _points(series: ClimateSeries | Sequence[SeriesPoint]) -> List[SeriesPoint]:
    return list(series.points if isinstance(series, ClimateSeries) else series)


def _inner_join(*series: ClimateSeries | Sequence[SeriesPoint]) -> List[Tuple[str, Tuple[float, ...]]]:
    maps = [{p.date: p.value for p in _points(s)} for s in series]
    common = set(maps[0])
    for m in maps[1:]:
        common &= set(m)
    return [(d, tuple(m[d] for m in maps)) for d in sorted(common)]


def monthly_totals(
    series: ClimateSeries | Sequence[SeriesPoint],
    complete_only: bool = False,
) -> List[SeriesPoint]:
    """
    Sum daily samples into ``YYYY-MM`` periods, chronologically.

    With ``complete_only`` a first month that does not start on day 1 and a
    last month that stops before its final calendar day are dropped, so a
    truncated edge month is never standardized against full ones.
    """
    totals: Dict[str, List[float]] = {}
    for p in _points(series):
        totals.setdefault(p.date[:7], []).append(p.value)
    months = sorted(totals)

    if complete_only and months:
        dates = [p.date for p in _points(series)]
        first, last = min(dates), max(dates)
        year, month = int(last[:4]), int(last[5:7])
        if int(last[8:10]) < calendar.monthrange(year, month)[1]:
            months = months[:-1]
        if months and int(first[8:10]) > 1:
            months = months[1:]
    return [SeriesPoint(m, math.fsum(totals[m])) for m in months]


def _rolling_standardized(
    points: List[SeriesPoint], timescale: int, label: str, suffix: str = "",
) -> List[IndexSeriesEntry]:
    values = [p.value for p in points]
    entries: List[IndexSeriesEntry] = []
    for i in range(timescale - 1, len(points)):
        result = _standardize(values[i - timescale + 1:i + 1], timescale, label, suffix)
        entries.append(IndexSeriesEntry(
            date=points[i].date,
            value=result.value,
            category=result.category,
            description=result.description,
            timescale=timescale,
            status=result.status,
        ))
    return entries


def spi_series(
    precipitation: ClimateSeries | Sequence[SeriesPoint],
    timescale: int = 12,
    period: str = "daily",
) -> List[IndexSeriesEntry]:
    """
    Rolling SPI, one entry per period once the window is full.

    ``period="monthly"`` first sums daily precipitation per calendar month,
    which is the conventional SPI accumulation.
    """
    points = monthly_totals(precipitation, complete_only=True) if period == "monthly" else _points(precipitation)
    if timescale < 1:
        return []
    return _rolling_standardized(points, timescale, "SPI")


def spei_series(
    precipitation: ClimateSeries | Sequence[SeriesPoint],
    pet: ClimateSeries | Sequence[SeriesPoint],
    timescale: int = 12,
    period: str = "daily",
) -> List[IndexSeriesEntry]:
    """Rolling SPEI over dates present in both series."""
    if period == "monthly":
        precipitation = monthly_totals(precipitation, complete_only=True)
        pet = monthly_totals(pet, complete_only=True)
    joined = _inner_join(precipitation, pet)
    balance = [SeriesPoint(d, p - e) for d, (p, e) in joined]
    if timescale < 1:
        return []
    return _rolling_standardized(balance, timescale, "SPEI", " considering evapotranspiration")


def pdsi_series(
    precipitation: ClimateSeries | Sequence[SeriesPoint],
    pet: ClimateSeries | Sequence[SeriesPoint],
    window: int = 12,
) -> List[IndexSeriesEntry]:
    joined = _inner_join(precipitation, pet)
    entries: List[IndexSeriesEntry] = []
    for i in range(window - 1, len(joined)):
        chunk = joined[i - window + 1:i + 1]
        result = pdsi([p for _, (p, _) in chunk], [e for _, (_, e) in chunk])
        entries.append(IndexSeriesEntry(
            date=joined[i][0],
            value=result.value,
            category=result.category,
            description=result.description,
            timescale=window,
            status=result.status,
        ))
    return entries


def heat_index_series(
    temperature_c: ClimateSeries | Sequence[SeriesPoint],
    humidity: ClimateSeries | Sequence[SeriesPoint],
) -> List[IndexSeriesEntry]:
    """Heat index on days hot (> 80 °F) and humid (> 40 %) enough for it to matter."""
    entries: List[IndexSeriesEntry] = []
    for day, (t_c, rh) in _inner_join(temperature_c, humidity):
        t_f = celsius_to_fahrenheit(t_c)
        if t_f <= HEAT_INDEX_MIN_TEMP_F or rh <= HEAT_INDEX_MIN_HUMIDITY:
            continue
        result = heat_index(t_f, rh)
        entries.append(IndexSeriesEntry(
            date=day,
            value=result.value,
            category=result.category,
            description=result.description,
            timescale=1,
            feels_like=fahrenheit_to_celsius(result.value),
        ))
    return entries


def wind_chill_series(
    temperature_c: ClimateSeries | Sequence[SeriesPoint],
    wind_ms: ClimateSeries | Sequence[SeriesPoint],
) -> List[IndexSeriesEntry]:
    """Wind chill on cold (≤ 50 °F), breezy (≥ 3 mph) days."""
    entries: List[IndexSeriesEntry] = []
    for day, (t_c, w) in _inner_join(temperature_c, wind_ms):
        t_f = celsius_to_fahrenheit(t_c)
        mph = w * MS_TO_MPH
        if t_f > WIND_CHILL_MAX_TEMP_F or mph < WIND_CHILL_MIN_WIND_MPH:
            continue
        result = wind_chill(t_f, mph)
        entries.append(IndexSeriesEntry(
            date=day,
            value=result.value,
            category=result.category,
            description=result.description,
            timescale=1,
            feels_like=fahrenheit_to_celsius(result.value),
        ))
    return entries


# ═══════════════════════════════════════════════════════════════════════════
# Drought analysis over an SPI series
# ═══════════════════════════════════════════════════════════════════════════

DROUGHT_SEVERITY_BANDS: Tuple[Tuple[float, str], ...] = (
    (-2.0, "extreme"),
    (-1.5, "severe"),
    (-1.0, "moderate"),
    (-0.5, "mild"),
)
DROUGHT_ONSET_SPI = -0.5
TREND_DELTA = 0.5


@dataclass
class DroughtAnalysis:
    current_value: Optional[float]
    trend: str       # improving | stable | worsening
    severity: str    # none | mild | moderate | severe | extreme
    duration: int    # trailing periods with SPI < −0.5
    samples: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_value": None if self.current_value is None else round(self.current_value, 3),
            "trend": self.trend,
            "severity": self.severity,
            "duration": self.duration,
            "samples": self.samples,
        }


def analyze_drought(entries: Sequence[IndexSeriesEntry]) -> DroughtAnalysis:
    """Current state, trend and persistence of drought from SPI entries."""
    values = [e.value for e in entries if e.status == IndexStatus.OK]
    if not values:
        return DroughtAnalysis(None, "stable", "none", 0, 0)

    current = values[-1]

    trend = "stable"
    half = len(values) // 2
    if half:
        first, second = values[:half], values[half:]
        delta = math.fsum(second) / len(second) - math.fsum(first) / len(first)
        if delta > TREND_DELTA:
            trend = "improving"
        elif delta < -TREND_DELTA:
            trend = "worsening"

    severity = "none"
    for bound, label in DROUGHT_SEVERITY_BANDS:
        if current <= bound:
            severity = label
            break

    duration = 0
    for v in reversed(values):
        if v >= DROUGHT_ONSET_SPI:
            break
        duration += 1

    return DroughtAnalysis(current, trend, severity, duration, len(values))
