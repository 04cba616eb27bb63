"""
Ingestion normalizer — raw provider payloads → typed, validated series.

Rules applied here and nowhere else:

* Dates are normalised to ``YYYY-MM-DD``. Compact ``YYYYMMDD`` keys (NASA
  POWER) and ISO timestamps (Open-Meteo hourly) are both accepted.
* Sentinels are missing values, never readings. Each parameter family has
  its own validity range (temperature-like ≤ −100 is a fill value, negative
  precipitation is impossible, humidity lives in [0, 100], ...).
* Series come out sorted by date with one sample per date.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import (
    ClimateSeries,
    DailyObservation,
    DataQuality,
    Parameter,
    SeriesPoint,
)

# (lower, upper, lower_inclusive). None means unbounded.
VALID_RANGES: Dict[Parameter, Tuple[Optional[float], Optional[float], bool]] = {
    Parameter.TEMPERATURE: (-100.0, None, False),
    Parameter.TEMPERATURE_MAX: (-100.0, None, False),
    Parameter.TEMPERATURE_MIN: (-100.0, None, False),
    Parameter.PRECIPITATION: (0.0, None, True),
    Parameter.HUMIDITY: (0.0, 100.0, True),
    Parameter.WIND_SPEED: (0.0, None, True),
    Parameter.SOIL_MOISTURE: (0.0, 1.0, True),
    Parameter.EVAPOTRANSPIRATION: (0.0, None, True),
}


def normalize_date(raw: Any) -> Optional[str]:
    """
    Normalise a provider date to ``YYYY-MM-DD``; ``None`` if unparseable.

    >>> normalize_date("20240105")
    '2024-01-05'
    >>> normalize_date("2024-01-05T12:00")
    '2024-01-05'
    """
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    try:
        if len(text) == 8 and text.isdigit():
            return datetime.strptime(text, "%Y%m%d").date().isoformat()
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return None


def coerce_value(raw: Any) -> Optional[float]:
    """Float or ``None``: rejects bools, NaN, infinities and non-numerics."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def is_valid_value(parameter: Parameter | str, value: Optional[float]) -> bool:
    if value is None:
        return False
    lower, upper, lower_inclusive = VALID_RANGES[Parameter(parameter)]
    if lower is not None:
        if lower_inclusive and value < lower:
            return False
        if not lower_inclusive and value <= lower:
            return False
    if upper is not None and value > upper:
        return False
    return True


def clean_value(parameter: Parameter | str, raw: Any) -> Optional[float]:
    value = coerce_value(raw)
    return value if is_valid_value(parameter, value) else None


def normalize_series(
    parameter: Parameter | str,
    raw: Mapping[Any, Any] | Iterable[Tuple[Any, Any]],
    *,
    source: str = "",
) -> ClimateSeries:
    """
    Build a validated series from ``{date: value}`` or ``(date, value)`` pairs.

    Quality is ``ok`` when every sample survived, ``partial`` when some were
    dropped and ``no_data`` when none did. Later duplicates of a date win.
    """
    name = Parameter(parameter).value
    pairs = raw.items() if isinstance(raw, Mapping) else raw

    kept: Dict[str, float] = {}
    total = 0
    for raw_date, raw_value in pairs:
        total += 1
        day = normalize_date(raw_date)
        value = clean_value(name, raw_value)
        if day is None or value is None:
            continue
        kept[day] = value

    if not kept:
        return ClimateSeries.unavailable(name, DataQuality.NO_DATA, source)

    quality = DataQuality.OK if len(kept) == total else DataQuality.PARTIAL
    points = [SeriesPoint(d, kept[d]) for d in sorted(kept)]
    return ClimateSeries(parameter=name, points=points, quality=quality, source=source)


def normalize_columns(
    parameter: Parameter | str,
    dates: Sequence[Any],
    values: Optional[Sequence[Any]],
    *,
    source: str = "",
) -> ClimateSeries:
    """Column-oriented variant for parallel ``time``/``value`` arrays."""
    if not values:
        return ClimateSeries.unavailable(Parameter(parameter).value, DataQuality.NO_DATA, source)
    return normalize_series(parameter, zip(dates, values), source=source)


def merge_observations(series: Mapping[str, ClimateSeries]) -> List[DailyObservation]:
    """Outer-join series on date into one ``DailyObservation`` per day."""
    by_date: Dict[str, DailyObservation] = {}
    for name, s in series.items():
        attr = Parameter(name).value
        for point in s.points:
            obs = by_date.get(point.date)
            if obs is None:
                obs = by_date[point.date] = DailyObservation(date=point.date)
            setattr(obs, attr, point.value)
    return [by_date[d] for d in sorted(by_date)]


def series_from_observations(
    observations: Iterable[DailyObservation],
    parameter: Parameter | str,
) -> ClimateSeries:
    """Extract one parameter back out of merged observations."""
    name = Parameter(parameter).value
    pairs = [(o.date, getattr(o, name)) for o in observations]
    return normalize_series(name, [(d, v) for d, v in pairs if v is not None])
