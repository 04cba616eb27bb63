"""
Health check aggregation — deep health probe for the service.

Checks:
    • Cache backend reachability (memory or Redis)
    • Configured upstream data providers (Open-Meteo / NASA POWER,
      elevation, landslide catalogue)

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from climate_risk.app.core.cache import ClimateCache
from climate_risk.app.core.config import Settings, settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_cache(cache: Optional[ClimateCache]) -> ComponentHealth:
    """A disabled cache is healthy; an unreachable one degrades the service."""
    comp = ComponentHealth(name="cache")
    start = time.monotonic()
    if cache is None:
        comp.message = "Caching disabled"
    elif not cache.is_open:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Cache not opened"
    elif await cache.ping():
        comp.message = "Cache available"
        comp.details = {"backend": cache.backend.name}
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Cache backend unreachable - serving uncached"
        comp.details = {"backend": cache.backend.name}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_providers(cfg: Settings = settings) -> ComponentHealth:
    """Report the configured upstream endpoints (no network call)."""
    comp = ComponentHealth(name="data_providers")
    start = time.monotonic()
    weather_url = cfg.NASA_POWER_URL if cfg.DATA_PROVIDER == "nasa_power" else cfg.OPEN_METEO_ARCHIVE_URL
    comp.message = f"Weather provider: {cfg.DATA_PROVIDER}"
    comp.details = {
        "weather": weather_url,
        "elevation": cfg.OPEN_METEO_ELEVATION_URL,
        "landslide_catalog": cfg.LANDSLIDE_CATALOG_URL,
    }
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(cache: Optional[ClimateCache] = None) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.append(await check_cache(cache))
    report.components.append(await check_providers())

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    if report.status != HealthStatus.HEALTHY:
        logger.warning("Health check: %s", report.status.value)
    return report
