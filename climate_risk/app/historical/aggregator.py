"""
Historical Aggregator — monthly buckets over a multi-year daily window.

Groups daily observations by calendar month ("YYYY-MM"), computes monthly
weather statistics, and scores each month for flood and drought risk on a
0–100 point scale built from that month's own sub-series:

    flood    extreme days (P > 50 mm), longest run of P > 5 mm,
             max daily rainfall, monthly total
    drought  deficit against a baseline daily mean, longest dry run,
             dry-day count (P < 1 mm), monthly total

A missing value or a gap in the calendar always ends a run; it is never
treated as zero rainfall.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from climate_risk.app.ingestion.models import DailyObservation
from climate_risk.app.scoring import thresholds as th


def month_key(day: str) -> str:
    return day[:7]


def group_by_month(
    observations: Sequence[DailyObservation],
) -> List[Tuple[str, List[DailyObservation]]]:
    """(month_key, days) pairs in chronological order, days sorted by date."""
    groups: Dict[str, List[DailyObservation]] = {}
    for obs in observations:
        groups.setdefault(month_key(obs.date), []).append(obs)
    return [
        (key, sorted(groups[key], key=lambda o: o.date))
        for key in sorted(groups)
    ]


def longest_run(
    days: Sequence[DailyObservation],
    predicate: Callable[[float], bool],
) -> int:
    """
    Longest stretch of consecutive calendar days whose precipitation
    satisfies ``predicate``. Missing values and skipped dates end a run.
    """
    best = 0
    current = 0
    previous: Optional[date] = None
    for obs in days:
        today = date.fromisoformat(obs.date)
        contiguous = previous is not None and today - previous == timedelta(days=1)
        previous = today

        value = obs.precipitation
        if value is None or not predicate(value):
            current = 0
            continue
        current = current + 1 if contiguous and current > 0 else 1
        if current > best:
            best = current
    return best


# ═══════════════════════════════════════════════════════════════════════════
# Monthly weather statistics
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class MonthlyAggregate:
    month: str                          # YYYY-MM
    days: int
    avg_temperature: Optional[float]
    max_temperature: Optional[float]
    min_temperature: Optional[float]
    total_precipitation: Optional[float]
    avg_humidity: Optional[float]
    rainy_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "days": self.days,
            "avg_temperature": _round(self.avg_temperature),
            "max_temperature": _round(self.max_temperature),
            "min_temperature": _round(self.min_temperature),
            "total_precipitation": _round(self.total_precipitation),
            "avg_humidity": _round(self.avg_humidity),
            "rainy_days": self.rainy_days,
        }


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return None if value is None else round(value, digits)


def _month_statistics(month: str, days: Sequence[DailyObservation]) -> MonthlyAggregate:
    temp_sum = 0.0
    temp_count = 0
    temp_max: Optional[float] = None
    temp_min: Optional[float] = None
    precip_total = 0.0
    precip_count = 0
    humidity_sum = 0.0
    humidity_count = 0
    rainy = 0

    for obs in days:
        if obs.temperature is not None:
            temp_sum += obs.temperature
            temp_count += 1
        high = obs.temperature_max if obs.temperature_max is not None else obs.temperature
        low = obs.temperature_min if obs.temperature_min is not None else obs.temperature
        if high is not None and (temp_max is None or high > temp_max):
            temp_max = high
        if low is not None and (temp_min is None or low < temp_min):
            temp_min = low
        if obs.precipitation is not None:
            precip_total += obs.precipitation
            precip_count += 1
            if obs.precipitation > th.MONTHLY_RAINY_DAY_MM:
                rainy += 1
        if obs.humidity is not None:
            humidity_sum += obs.humidity
            humidity_count += 1

    return MonthlyAggregate(
        month=month,
        days=len(days),
        avg_temperature=temp_sum / temp_count if temp_count else None,
        max_temperature=temp_max,
        min_temperature=temp_min,
        total_precipitation=precip_total if precip_count else None,
        avg_humidity=humidity_sum / humidity_count if humidity_count else None,
        rainy_days=rainy,
    )


def aggregate_monthly(observations: Sequence[DailyObservation]) -> List[MonthlyAggregate]:
    return [_month_statistics(month, days) for month, days in group_by_month(observations)]


# ═══════════════════════════════════════════════════════════════════════════
# Monthly flood risk
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class MonthlyFloodRisk:
    month: str
    total_rainfall: float
    max_daily_rainfall: float
    extreme_days: int
    consecutive_rain_days: int
    flood_risk_score: float

    @property
    def risk_score(self) -> float:
        return self.flood_risk_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "total_rainfall": round(self.total_rainfall, 2),
            "max_daily_rainfall": round(self.max_daily_rainfall, 2),
            "extreme_days": self.extreme_days,
            "consecutive_rain_days": self.consecutive_rain_days,
            "flood_risk_score": round(self.flood_risk_score, 1),
        }


def flood_month_score(
    extreme_days: int, longest_rain_run: int, max_daily: float, total: float,
) -> float:
    score = extreme_days * th.MONTHLY_FLOOD_POINTS_PER_EXTREME_DAY
    if longest_rain_run > th.MONTHLY_FLOOD_RAINY_RUN_DAYS:
        score += th.MONTHLY_FLOOD_RAINY_RUN_POINTS
    score += th.band_above(max_daily, th.MONTHLY_FLOOD_MAX_DAILY_ABOVE, 0.0)
    score += th.band_above(total, th.MONTHLY_FLOOD_TOTAL_ABOVE, 0.0)
    return min(score, th.MONTHLY_SCORE_CAP)


def _flood_month(month: str, days: Sequence[DailyObservation]) -> Optional[MonthlyFloodRisk]:
    total = 0.0
    max_daily = 0.0
    extreme = 0
    valid = 0
    for obs in days:
        if obs.precipitation is None:
            continue
        valid += 1
        total += obs.precipitation
        if obs.precipitation > max_daily:
            max_daily = obs.precipitation
        if obs.precipitation > th.MONTHLY_FLOOD_EXTREME_DAY_MM:
            extreme += 1
    if valid == 0:
        return None

    run = longest_run(days, lambda p: p > th.MONTHLY_FLOOD_RAINY_DAY_MM)
    return MonthlyFloodRisk(
        month=month,
        total_rainfall=total,
        max_daily_rainfall=max_daily,
        extreme_days=extreme,
        consecutive_rain_days=run,
        flood_risk_score=flood_month_score(extreme, run, max_daily, total),
    )


def monthly_flood_risk(observations: Sequence[DailyObservation]) -> List[MonthlyFloodRisk]:
    """Per-month flood scores; months without any precipitation value are skipped."""
    results: List[MonthlyFloodRisk] = []
    for month, days in group_by_month(observations):
        record = _flood_month(month, days)
        if record is not None:
            results.append(record)
    return results


# ═══════════════════════════════════════════════════════════════════════════
# Monthly drought risk
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class MonthlyDroughtRisk:
    month: str
    total_rainfall: float
    expected_rainfall: float
    deficit_percent: float
    dry_days: int
    consecutive_dry_days: int
    drought_risk_score: float

    @property
    def risk_score(self) -> float:
        return self.drought_risk_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "total_rainfall": round(self.total_rainfall, 2),
            "expected_rainfall": round(self.expected_rainfall, 2),
            "deficit_percent": round(self.deficit_percent, 1),
            "dry_days": self.dry_days,
            "consecutive_dry_days": self.consecutive_dry_days,
            "drought_risk_score": round(self.drought_risk_score, 1),
        }


def baseline_daily_mean(observations: Sequence[DailyObservation]) -> float:
    """Mean daily precipitation across the whole window (3 mm when empty)."""
    total = 0.0
    count = 0
    for obs in observations:
        if obs.precipitation is not None:
            total += obs.precipitation
            count += 1
    if count == 0:
        return th.MONTHLY_DROUGHT_DEFAULT_BASELINE_MM
    return total / count


def drought_month_score(deficit_percent: float, dry_run: int, dry_days: int, total: float) -> float:
    score = th.band_above(deficit_percent, th.MONTHLY_DROUGHT_DEFICIT_PCT_ABOVE, 0.0)
    score += th.band_above(dry_run, th.MONTHLY_DROUGHT_DRY_RUN_ABOVE, 0.0)
    score += th.band_above(dry_days, th.MONTHLY_DROUGHT_DRY_DAYS_ABOVE, 0.0)
    if total < th.MONTHLY_DROUGHT_LOW_TOTAL_MM:
        score += th.MONTHLY_DROUGHT_LOW_TOTAL_POINTS
    return min(score, th.MONTHLY_SCORE_CAP)


def _drought_month(
    month: str, days: Sequence[DailyObservation], baseline: float,
) -> Optional[MonthlyDroughtRisk]:
    total = 0.0
    valid = 0
    dry = 0
    for obs in days:
        if obs.precipitation is None:
            continue
        valid += 1
        total += obs.precipitation
        if obs.precipitation < th.MONTHLY_DROUGHT_DRY_DAY_MM:
            dry += 1
    if valid == 0:
        return None

    expected = baseline * valid
    deficit = (expected - total) / expected * 100 if expected > 0 else 0.0
    run = longest_run(days, lambda p: p < th.MONTHLY_DROUGHT_DRY_DAY_MM)
    return MonthlyDroughtRisk(
        month=month,
        total_rainfall=total,
        expected_rainfall=expected,
        deficit_percent=deficit,
        dry_days=dry,
        consecutive_dry_days=run,
        drought_risk_score=drought_month_score(deficit, run, dry, total),
    )


def monthly_drought_risk(
    observations: Sequence[DailyObservation],
    baseline_daily: Optional[float] = None,
) -> List[MonthlyDroughtRisk]:
    """
    Per-month drought scores. The baseline daily mean is taken from the
    whole window unless ``baseline_daily`` pins it, which keeps a month's
    score independent of how many years surround it.
    """
    baseline = baseline_daily if baseline_daily is not None else baseline_daily_mean(observations)
    results: List[MonthlyDroughtRisk] = []
    for month, days in group_by_month(observations):
        record = _drought_month(month, days, baseline)
        if record is not None:
            results.append(record)
    return results
