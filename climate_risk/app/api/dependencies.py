"""
Request-scoped access to objects built in the application lifespan.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional, Tuple

from fastapi import Request

from climate_risk.app.core.config import settings
from climate_risk.app.services.risk_service import ClimateRiskService


def get_service(request: Request) -> ClimateRiskService:
    return request.app.state.service


def default_period(
    start: Optional[date],
    end: Optional[date],
    service: ClimateRiskService,
) -> Tuple[date, date]:
    """Missing bounds default to the trailing DEFAULT_LOOKBACK_DAYS."""
    end = end or service.today()
    start = start or end - timedelta(days=settings.DEFAULT_LOOKBACK_DAYS - 1)
    return start, end
