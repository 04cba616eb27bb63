"""
Extreme-weather event detection over daily series.

═══════════════════════════════════════════════════════════════════════════
SCAN ALGORITHM (shared by every detector)
═══════════════════════════════════════════════════════════════════════════

Single left-to-right pass with at most one open accumulator:

    predicate holds      → open an accumulator, or fold the sample into it
    predicate fails      → closing test on the open accumulator:
                             pass → finalise severity, emit
                             fail → discard
    calendar gap (> 1 d) → treated like a failing sample; a missing day
                           never bridges two runs
    end of series        → if ``flush_at_end``: closing test as above, the
                           emitted event is marked ``ongoing``;
                           otherwise the accumulator is dropped

Detectors:

    Hazard      Predicate                Closing test              Intensity
    ─────────   ──────────────────────   ───────────────────────   ──────────────────────
    heat wave   T ≥ 35 °C                ≥ 3 consecutive days      (avg − thr) / 10
    cold wave   T ≤ 5 °C                 ≥ 3 consecutive days      (thr − avg) / 10
    drought     P < 0.3 mm               deficit > 10 mm           deficit / 50
    flood       P ≥ 50 mm                total > 100 mm            total / 200
    storm       wind ≥ 17.2 m/s          ≥ 1 day                   max wind / 32.7

Intensity is clamped to [0, 1]; severity: ≥0.8 extreme, ≥0.6 high,
≥0.4 moderate, else low.

The flood return period is a coarse lookup on the event total, not a
frequency analysis.
═══════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import date, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from climate_risk.app.ingestion.models import (
    ClimateSeries,
    DailyObservation,
    Parameter,
    SeriesPoint,
)
from climate_risk.app.ingestion.normalizer import series_from_observations

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    HEAT_WAVE = "heat_wave"
    COLD_WAVE = "cold_wave"
    DROUGHT = "drought"
    FLOOD = "flood"
    STORM = "storm"


class Severity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


SEVERITY_BANDS = (
    (0.8, Severity.EXTREME),
    (0.6, Severity.HIGH),
    (0.4, Severity.MODERATE),
)

# (minimum total mm, return period years)
RETURN_PERIOD_BANDS = (
    (200.0, 100),
    (150.0, 50),
    (100.0, 25),
    (75.0, 10),
    (50.0, 5),
)
DEFAULT_RETURN_PERIOD = 2

HURRICANE_FORCE_MS = 32.7
STORM_CATEGORIES = (
    (HURRICANE_FORCE_MS, "hurricane force"),
    (24.5, "storm"),
    (20.8, "strong gale"),
    (17.2, "gale"),
)


def severity_from_intensity(intensity: float) -> Severity:
    for bound, severity in SEVERITY_BANDS:
        if intensity >= bound:
            return severity
    return Severity.LOW


def return_period_years(total_mm: float) -> int:
    for bound, years in RETURN_PERIOD_BANDS:
        if total_mm >= bound:
            return years
    return DEFAULT_RETURN_PERIOD


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


@dataclass
class EventThresholds:
    heat_temperature: float = 35.0
    heat_min_duration: int = 3
    cold_temperature: float = 5.0
    cold_min_duration: int = 3
    drought_precipitation: float = 0.3
    drought_min_deficit: float = 10.0
    flood_daily_precipitation: float = 50.0
    flood_min_total: float = 100.0
    storm_wind_speed: float = 17.2
    storm_min_duration: int = 1
    flush_at_end: bool = True


# ═══════════════════════════════════════════════════════════════════════════
# Event records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class DetectedEvent:
    id: str
    type: EventType
    severity: Severity
    start_date: str
    end_date: str
    duration: int
    intensity: float
    description: str
    ongoing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, float):
                value = round(value, 3)
            d[f.name] = value
        return d


@dataclass
class HeatWaveEvent(DetectedEvent):
    max_temperature: float = 0.0
    min_temperature: float = 0.0
    average_temperature: float = 0.0
    consecutive_days: int = 0


@dataclass
class ColdWaveEvent(DetectedEvent):
    max_temperature: float = 0.0
    min_temperature: float = 0.0
    average_temperature: float = 0.0
    consecutive_days: int = 0


@dataclass
class DroughtEvent(DetectedEvent):
    precipitation_deficit: float = 0.0
    soil_moisture_deficit: Optional[float] = None
    vegetation_stress: Optional[float] = None


@dataclass
class FloodEvent(DetectedEvent):
    precipitation_total: float = 0.0
    peak_intensity: float = 0.0
    return_period: int = DEFAULT_RETURN_PERIOD


@dataclass
class StormEvent(DetectedEvent):
    max_wind_speed: float = 0.0
    average_wind_speed: float = 0.0
    precipitation_total: Optional[float] = None
    category: str = "gale"


# ═══════════════════════════════════════════════════════════════════════════
# Shared scanner
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class _Run:
    """Open accumulator for one candidate event."""
    start_date: str
    end_date: str
    days: int = 0
    total: float = 0.0
    peak: float = float("-inf")
    low: float = float("inf")
    deficit: float = 0.0
    aux_max: Optional[float] = None
    aux_total: Optional[float] = None

    def fold(self, point: SeriesPoint) -> None:
        self.end_date = point.date
        self.days += 1
        self.total += point.value
        self.peak = max(self.peak, point.value)
        self.low = min(self.low, point.value)

    @property
    def mean(self) -> float:
        return self.total / self.days if self.days else 0.0


E = TypeVar("E", bound=DetectedEvent)


def _points(series: ClimateSeries | Sequence[SeriesPoint]) -> List[SeriesPoint]:
    return list(series.points if isinstance(series, ClimateSeries) else series)


def _consecutive(prev: str, current: str) -> bool:
    return date.fromisoformat(current) - date.fromisoformat(prev) == timedelta(days=1)


def _scan(
    points: Sequence[SeriesPoint],
    predicate: Callable[[float], bool],
    fold: Callable[[_Run, SeriesPoint], None],
    finalize: Callable[[_Run, bool], Optional[E]],
    flush_at_end: bool,
) -> List[E]:
    events: List[E] = []
    run: Optional[_Run] = None

    def close(ongoing: bool) -> None:
        event = finalize(run, ongoing)
        if event is not None:
            events.append(event)

    for point in points:
        if run is not None and not _consecutive(run.end_date, point.date):
            close(False)
            run = None

        if predicate(point.value):
            if run is None:
                run = _Run(start_date=point.date, end_date=point.date)
            run.fold(point)
            fold(run, point)
        elif run is not None:
            close(False)
            run = None

    if run is not None and flush_at_end:
        close(True)
    return events


def _no_fold(run: _Run, point: SeriesPoint) -> None:
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Detectors
# ═══════════════════════════════════════════════════════════════════════════

def detect_heat_waves(
    temperature: ClimateSeries | Sequence[SeriesPoint],
    threshold: float = 35.0,
    min_duration: int = 3,
    *,
    flush_at_end: bool = True,
) -> List[HeatWaveEvent]:
    """Runs of at least ``min_duration`` consecutive days with T ≥ ``threshold`` (°C)."""

    def finalize(run: _Run, ongoing: bool) -> Optional[HeatWaveEvent]:
        if run.days < min_duration:
            return None
        intensity = _clamp01((run.mean - threshold) / 10.0)
        return HeatWaveEvent(
            id=f"heat_wave_{run.start_date}",
            type=EventType.HEAT_WAVE,
            severity=severity_from_intensity(intensity),
            start_date=run.start_date,
            end_date=run.end_date,
            duration=run.days,
            intensity=intensity,
            description=(
                f"Heat wave lasting {run.days} days with average temperature "
                f"{run.mean:.1f}°C"
            ),
            ongoing=ongoing,
            max_temperature=run.peak,
            min_temperature=run.low,
            average_temperature=run.mean,
            consecutive_days=run.days,
        )

    return _scan(_points(temperature), lambda t: t >= threshold, _no_fold, finalize, flush_at_end)


def detect_cold_waves(
    temperature: ClimateSeries | Sequence[SeriesPoint],
    threshold: float = 5.0,
    min_duration: int = 3,
    *,
    flush_at_end: bool = True,
) -> List[ColdWaveEvent]:
    """Runs of at least ``min_duration`` consecutive days with T ≤ ``threshold`` (°C)."""

    def finalize(run: _Run, ongoing: bool) -> Optional[ColdWaveEvent]:
        if run.days < min_duration:
            return None
        intensity = _clamp01((threshold - run.mean) / 10.0)
        return ColdWaveEvent(
            id=f"cold_wave_{run.start_date}",
            type=EventType.COLD_WAVE,
            severity=severity_from_intensity(intensity),
            start_date=run.start_date,
            end_date=run.end_date,
            duration=run.days,
            intensity=intensity,
            description=(
                f"Cold wave lasting {run.days} days with average temperature "
                f"{run.mean:.1f}°C"
            ),
            ongoing=ongoing,
            max_temperature=run.peak,
            min_temperature=run.low,
            average_temperature=run.mean,
            consecutive_days=run.days,
        )

    return _scan(_points(temperature), lambda t: t <= threshold, _no_fold, finalize, flush_at_end)


def detect_droughts(
    precipitation: ClimateSeries | Sequence[SeriesPoint],
    soil_moisture: Optional[ClimateSeries | Sequence[SeriesPoint]] = None,
    threshold: float = 0.3,
    min_deficit: float = 10.0,
    *,
    flush_at_end: bool = True,
) -> List[DroughtEvent]:
    """
    Runs of days with P < ``threshold`` mm whose accumulated deficit
    Σ(threshold − P) exceeds ``min_deficit``.

    Soil moisture (volumetric fraction) is matched by date; days without a
    soil reading do not contribute to the soil deficit. ``duration`` is the
    number of dry days in the run.
    """
    soil = {p.date: p.value for p in _points(soil_moisture)} if soil_moisture is not None else {}

    def fold(run: _Run, point: SeriesPoint) -> None:
        run.deficit += threshold - point.value
        s = soil.get(point.date)
        if s is not None:
            run.aux_max = max(run.aux_max or 0.0, 1.0 - s)

    def finalize(run: _Run, ongoing: bool) -> Optional[DroughtEvent]:
        if run.deficit <= min_deficit:
            return None
        intensity = _clamp01(run.deficit / 50.0)
        return DroughtEvent(
            id=f"drought_{run.start_date}",
            type=EventType.DROUGHT,
            severity=severity_from_intensity(intensity),
            start_date=run.start_date,
            end_date=run.end_date,
            duration=run.days,
            intensity=intensity,
            description=f"Drought with {run.deficit:.1f}mm precipitation deficit",
            ongoing=ongoing,
            precipitation_deficit=run.deficit,
            soil_moisture_deficit=run.aux_max,
            vegetation_stress=run.aux_max,
        )

    return _scan(_points(precipitation), lambda p: p < threshold, fold, finalize, flush_at_end)


def detect_floods(
    precipitation: ClimateSeries | Sequence[SeriesPoint],
    daily_threshold: float = 50.0,
    min_total: float = 100.0,
    *,
    flush_at_end: bool = True,
) -> List[FloodEvent]:
    """Runs of days with P ≥ ``daily_threshold`` whose total exceeds ``min_total`` mm."""

    def finalize(run: _Run, ongoing: bool) -> Optional[FloodEvent]:
        if run.total <= min_total:
            return None
        intensity = _clamp01(run.total / 200.0)
        return FloodEvent(
            id=f"flood_{run.start_date}",
            type=EventType.FLOOD,
            severity=severity_from_intensity(intensity),
            start_date=run.start_date,
            end_date=run.end_date,
            duration=run.days,
            intensity=intensity,
            description=f"Flood event with {run.total:.1f}mm total precipitation",
            ongoing=ongoing,
            precipitation_total=run.total,
            peak_intensity=run.peak,
            return_period=return_period_years(run.total),
        )

    return _scan(_points(precipitation), lambda p: p >= daily_threshold, _no_fold, finalize, flush_at_end)


def storm_category(max_wind_ms: float) -> str:
    for bound, label in STORM_CATEGORIES:
        if max_wind_ms >= bound:
            return label
    return "breeze"


def detect_storms(
    wind_speed: ClimateSeries | Sequence[SeriesPoint],
    precipitation: Optional[ClimateSeries | Sequence[SeriesPoint]] = None,
    threshold: float = 17.2,
    min_duration: int = 1,
    *,
    flush_at_end: bool = True,
) -> List[StormEvent]:
    """Runs of days with wind ≥ ``threshold`` m/s (gale force by default)."""
    rain = {p.date: p.value for p in _points(precipitation)} if precipitation is not None else {}

    def fold(run: _Run, point: SeriesPoint) -> None:
        r = rain.get(point.date)
        if r is not None:
            run.aux_total = (run.aux_total or 0.0) + r

    def finalize(run: _Run, ongoing: bool) -> Optional[StormEvent]:
        if run.days < min_duration:
            return None
        intensity = _clamp01(run.peak / HURRICANE_FORCE_MS)
        category = storm_category(run.peak)
        return StormEvent(
            id=f"storm_{run.start_date}",
            type=EventType.STORM,
            severity=severity_from_intensity(intensity),
            start_date=run.start_date,
            end_date=run.end_date,
            duration=run.days,
            intensity=intensity,
            description=f"Wind storm ({category}) with peak wind {run.peak:.1f} m/s",
            ongoing=ongoing,
            max_wind_speed=run.peak,
            average_wind_speed=run.mean,
            precipitation_total=run.aux_total,
            category=category,
        )

    return _scan(_points(wind_speed), lambda w: w >= threshold, fold, finalize, flush_at_end)


# ═══════════════════════════════════════════════════════════════════════════
# All hazards at once
# ═══════════════════════════════════════════════════════════════════════════

def _first_available(observations: Sequence[DailyObservation], *parameters: Parameter) -> ClimateSeries:
    series = series_from_observations(observations, parameters[0])
    for p in parameters[1:]:
        if series.is_available:
            break
        series = series_from_observations(observations, p)
    return series


def detect_extreme_events(
    observations: Sequence[DailyObservation],
    thresholds: Optional[EventThresholds] = None,
) -> List[DetectedEvent]:
    """
    Run every detector over merged daily observations.

    Heat waves use the daily maximum and cold waves the daily minimum,
    falling back to the daily mean when the extreme series is absent.
    Events come back ordered by start date, then type.
    """
    t = thresholds or EventThresholds()
    flush = t.flush_at_end

    precip = series_from_observations(observations, Parameter.PRECIPITATION)
    soil = series_from_observations(observations, Parameter.SOIL_MOISTURE)
    wind = series_from_observations(observations, Parameter.WIND_SPEED)
    hot = _first_available(observations, Parameter.TEMPERATURE_MAX, Parameter.TEMPERATURE)
    cold = _first_available(observations, Parameter.TEMPERATURE_MIN, Parameter.TEMPERATURE)

    events: List[DetectedEvent] = []
    events.extend(detect_heat_waves(hot, t.heat_temperature, t.heat_min_duration, flush_at_end=flush))
    events.extend(detect_cold_waves(cold, t.cold_temperature, t.cold_min_duration, flush_at_end=flush))
    events.extend(detect_droughts(precip, soil, t.drought_precipitation, t.drought_min_deficit,
                                  flush_at_end=flush))
    events.extend(detect_floods(precip, t.flood_daily_precipitation, t.flood_min_total,
                                flush_at_end=flush))
    events.extend(detect_storms(wind, precip, t.storm_wind_speed, t.storm_min_duration,
                                flush_at_end=flush))

    events.sort(key=lambda e: (e.start_date, e.type.value))
    logger.debug("Detected %d events over %d days", len(events), len(observations))
    return events


@dataclass
class EventSummary:
    total_events: int = 0
    events_by_type: Dict[str, int] = field(default_factory=dict)
    events_by_severity: Dict[str, int] = field(default_factory=dict)
    average_duration: float = 0.0
    average_intensity: float = 0.0
    ongoing_events: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_events": self.total_events,
            "events_by_type": self.events_by_type,
            "events_by_severity": self.events_by_severity,
            "average_duration": round(self.average_duration, 2),
            "average_intensity": round(self.average_intensity, 3),
            "ongoing_events": self.ongoing_events,
        }


def summarize_events(events: Sequence[DetectedEvent]) -> EventSummary:
    summary = EventSummary(total_events=len(events))
    if not events:
        return summary

    duration_total = 0
    intensity_total = 0.0
    for e in events:
        summary.events_by_type[e.type.value] = summary.events_by_type.get(e.type.value, 0) + 1
        summary.events_by_severity[e.severity.value] = summary.events_by_severity.get(e.severity.value, 0) + 1
        duration_total += e.duration
        intensity_total += e.intensity
        if e.ongoing:
            summary.ongoing_events += 1

    summary.average_duration = duration_total / len(events)
    summary.average_intensity = intensity_total / len(events)
    return summary
