"""
Seasonal patterns, trends, and history summaries over monthly risk scores.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

import numpy as np

from climate_risk.app.ingestion.models import LandslideCatalogEvent
from climate_risk.app.scoring import thresholds as th

TREND_WINDOW_MONTHS = 12

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


class MonthlyScore(Protocol):
    month: str

    @property
    def risk_score(self) -> float: ...


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass
class SeasonalPattern:
    averages: Dict[int, float]          # calendar month (1–12) → mean score
    peak_month: Optional[int]

    @property
    def peak_month_name(self) -> Optional[str]:
        return MONTH_NAMES[self.peak_month - 1] if self.peak_month else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "averages": {MONTH_NAMES[m - 1]: round(v, 1) for m, v in sorted(self.averages.items())},
            "peak_month": self.peak_month,
            "peak_month_name": self.peak_month_name,
        }


@dataclass
class RiskTrend:
    direction: TrendDirection
    recent_average: Optional[float]
    previous_average: Optional[float]
    slope_per_year: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "recent_average": None if self.recent_average is None else round(self.recent_average, 2),
            "previous_average": None if self.previous_average is None else round(self.previous_average, 2),
            "slope_per_year": None if self.slope_per_year is None else round(self.slope_per_year, 3),
        }


@dataclass
class HistorySummary:
    months: int
    average_score: float
    max_score: float
    high_risk_months: int
    extreme_events: int
    seasonal: SeasonalPattern
    trend: RiskTrend

    def to_dict(self) -> Dict[str, Any]:
        return {
            "months": self.months,
            "average_score": round(self.average_score, 1),
            "max_score": round(self.max_score, 1),
            "high_risk_months": self.high_risk_months,
            "extreme_events": self.extreme_events,
            "seasonal_pattern": self.seasonal.to_dict(),
            "trend": self.trend.to_dict(),
        }


def seasonal_pattern(records: Sequence[MonthlyScore]) -> SeasonalPattern:
    """Average score per calendar month; the peak is the highest average (earliest on ties)."""
    sums: Dict[int, float] = {}
    counts: Dict[int, int] = {}
    for record in records:
        calendar_month = int(record.month[5:7])
        sums[calendar_month] = sums.get(calendar_month, 0.0) + record.risk_score
        counts[calendar_month] = counts.get(calendar_month, 0) + 1

    averages = {m: sums[m] / counts[m] for m in sums}
    peak: Optional[int] = None
    for m in sorted(averages):
        if peak is None or averages[m] > averages[peak]:
            peak = m
    return SeasonalPattern(averages=averages, peak_month=peak)


def risk_trend(records: Sequence[MonthlyScore]) -> RiskTrend:
    """
    Mean of the latest 12 monthly scores against the 12 before them.
    Without a previous window the direction is ``stable``. The slope is a
    least-squares fit over every month, reported in points per year.
    """
    scores = [r.risk_score for r in sorted(records, key=lambda r: r.month)]
    if not scores:
        return RiskTrend(TrendDirection.STABLE, None, None, None)

    recent = scores[-TREND_WINDOW_MONTHS:]
    previous = scores[-2 * TREND_WINDOW_MONTHS:-TREND_WINDOW_MONTHS]
    recent_avg = sum(recent) / len(recent)
    previous_avg = sum(previous) / len(previous) if previous else None

    if previous_avg is None or recent_avg == previous_avg:
        direction = TrendDirection.STABLE
    elif recent_avg > previous_avg:
        direction = TrendDirection.INCREASING
    else:
        direction = TrendDirection.DECREASING

    slope: Optional[float] = None
    if len(scores) >= 2:
        x = np.arange(len(scores), dtype=float)
        slope = float(np.polyfit(x, np.asarray(scores, dtype=float), 1)[0]) * 12

    return RiskTrend(direction, recent_avg, previous_avg, slope)


def summarize_history(records: Sequence[MonthlyScore]) -> HistorySummary:
    scores = [r.risk_score for r in records]
    extreme_events = 0
    for r in records:
        extreme_events += getattr(r, "extreme_days", 0)

    return HistorySummary(
        months=len(scores),
        average_score=sum(scores) / len(scores) if scores else 0.0,
        max_score=max(scores) if scores else 0.0,
        high_risk_months=sum(1 for s in scores if s > th.MONTHLY_HIGH_RISK_SCORE),
        extreme_events=extreme_events,
        seasonal=seasonal_pattern(records),
        trend=risk_trend(records),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Landslide catalogue history
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class LandslideHistorySummary:
    total_events: int
    events_per_year: float
    events_by_trigger: Dict[str, int] = field(default_factory=dict)
    events_by_size: Dict[str, int] = field(default_factory=dict)
    fatality_total: int = 0
    injury_total: int = 0
    most_recent_event: Optional[LandslideCatalogEvent] = None
    high_risk_months: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_events": self.total_events,
            "events_per_year": round(self.events_per_year, 2),
            "events_by_trigger": self.events_by_trigger,
            "events_by_size": self.events_by_size,
            "fatality_total": self.fatality_total,
            "injury_total": self.injury_total,
            "most_recent_event": self.most_recent_event.to_dict() if self.most_recent_event else None,
            "high_risk_months": self.high_risk_months,
        }


def landslide_history_summary(
    events: Sequence[LandslideCatalogEvent],
    years: float,
) -> LandslideHistorySummary:
    """
    Catalogue statistics over a ``years``-long lookback. High-risk months
    are calendar months whose event count is above the monthly average.
    """
    if not events:
        return LandslideHistorySummary(total_events=0, events_per_year=0.0)

    month_counts = [0] * 12
    for event in events:
        month_counts[int(event.date[5:7]) - 1] += 1
    avg_per_month = len(events) / 12

    return LandslideHistorySummary(
        total_events=len(events),
        events_per_year=len(events) / years if years > 0 else 0.0,
        events_by_trigger=dict(Counter(e.trigger or "unknown" for e in events)),
        events_by_size=dict(Counter(e.size or "unknown" for e in events)),
        fatality_total=sum(e.fatalities for e in events),
        injury_total=sum(e.injuries for e in events),
        most_recent_event=max(events, key=lambda e: e.date),
        high_risk_months=[i + 1 for i, count in enumerate(month_counts) if count > avg_per_month],
    )
