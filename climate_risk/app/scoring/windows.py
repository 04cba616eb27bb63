"""
Date-based trailing windows over a daily series.

Windows are anchored on the series' last date, not on sample counts, so a
missing day shortens the window instead of pulling in an older sample.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import List, Optional

from climate_risk.app.ingestion.models import ClimateSeries


def window_values(
    series: ClimateSeries,
    days: int,
    *,
    skip_days: int = 0,
    anchor: Optional[date] = None,
) -> List[float]:
    """
    Values dated in ``(end − skip_days − days, end − skip_days]`` where
    ``end`` is ``anchor`` or the last sample's date.
    """
    if not series.points:
        return []
    end = anchor or date.fromisoformat(series.points[-1].date)
    upper = end - timedelta(days=skip_days)
    lower = upper - timedelta(days=days)

    out: List[float] = []
    for p in series.points:
        d = date.fromisoformat(p.date)
        if lower < d <= upper:
            out.append(p.value)
    return out


def mean_or_none(values: List[float]) -> Optional[float]:
    return math.fsum(values) / len(values) if values else None


def sum_or_none(values: List[float]) -> Optional[float]:
    return math.fsum(values) if values else None
