"""
Shared fakes for service and API tests: a deterministic climate provider,
terrain and landslide-catalogue clients that never touch the network.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional

import pytest

from climate_risk.app.core.cache import ClimateCache, MemoryCacheBackend
from climate_risk.app.core.errors import ExternalServiceError
from climate_risk.app.ingestion.models import (
    ClimateSeries,
    DataQuality,
    LandslideCatalogEvent,
    Parameter,
    TerrainProfile,
)
from climate_risk.app.ingestion.normalizer import normalize_series
from climate_risk.app.ingestion.providers import (
    CatalogFetch,
    ClimateDataProvider,
    ElevationClient,
    LandslideCatalogClient,
)
from climate_risk.app.services.risk_service import ClimateRiskService

TODAY = date(2024, 6, 30)

ValueFn = Callable[[date], Optional[float]]


def _rain(day: date) -> float:
    # Two heavy days mid-month, light rain otherwise
    return {15: 60.0, 16: 70.0}.get(day.day, 2.0)


DEFAULT_VALUES: Dict[Parameter, ValueFn] = {
    Parameter.PRECIPITATION: _rain,
    Parameter.TEMPERATURE: lambda d: 25.0,
    Parameter.TEMPERATURE_MAX: lambda d: 30.0,
    Parameter.TEMPERATURE_MIN: lambda d: 18.0,
    Parameter.HUMIDITY: lambda d: 60.0,
    Parameter.WIND_SPEED: lambda d: 4.0,
    Parameter.SOIL_MOISTURE: lambda d: 0.35,
    Parameter.EVAPOTRANSPIRATION: lambda d: 3.0,
}


class FakeProvider(ClimateDataProvider):
    source = "fake"

    def __init__(self, values: Optional[Dict[Parameter, ValueFn]] = None, failing: Iterable[Parameter] = ()):
        super().__init__(backoff_base=0)
        self.values = {**DEFAULT_VALUES, **(values or {})}
        self.failing = set(failing)
        self.calls: List[Parameter] = []

    async def _fetch_series(self, parameter, latitude, longitude, start, end) -> ClimateSeries:
        self.calls.append(parameter)
        if parameter in self.failing:
            raise ExternalServiceError("fake", "unavailable")
        fn = self.values[parameter]
        days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
        return normalize_series(parameter, [(d.isoformat(), fn(d)) for d in days], source=self.source)


class FakeElevation(ElevationClient):
    def __init__(self, terrain: TerrainProfile):
        super().__init__()
        self.terrain = terrain
        self.calls = 0

    async def fetch_terrain(self, latitude: float, longitude: float) -> TerrainProfile:
        self.calls += 1
        return self.terrain


class FakeCatalog(LandslideCatalogClient):
    def __init__(self, fetch: CatalogFetch):
        super().__init__()
        self.fetch = fetch
        self.calls = 0

    async def fetch_events(self, latitude, longitude, radius_km, since=None) -> CatalogFetch:
        self.calls += 1
        return self.fetch


def catalog_event(event_id: str, day: str, lat: float = 27.70, lon: float = 85.30, **kwargs) -> LandslideCatalogEvent:
    return LandslideCatalogEvent(event_id=event_id, date=day, latitude=lat, longitude=lon, **kwargs)


DEFAULT_EVENTS = [
    catalog_event("a", "2020-07-14", trigger="downpour", fatalities=2),
    catalog_event("b", "2021-08-02", lat=27.72, lon=85.32, trigger="downpour"),
    catalog_event("c", "2022-07-30", lat=27.68, lon=85.29, trigger="earthquake", size="large"),
]


@pytest.fixture
def make_service():
    """Factory for a service wired to fakes; ``cache=False`` disables caching."""

    def build(
        *,
        cache: bool = True,
        values: Optional[Dict[Parameter, ValueFn]] = None,
        failing: Iterable[Parameter] = (),
        terrain: Optional[TerrainProfile] = TerrainProfile(elevation=1350.0, slope=2.0, aspect=90.0),
        catalog: Optional[CatalogFetch] = None,
    ) -> ClimateRiskService:
        return ClimateRiskService(
            provider=FakeProvider(values, failing),
            cache=ClimateCache(MemoryCacheBackend()) if cache else None,
            elevation=FakeElevation(terrain) if terrain is not None else None,
            catalog=FakeCatalog(catalog or CatalogFetch(events=list(DEFAULT_EVENTS))),
            today=lambda: TODAY,
        )

    return build


@pytest.fixture
def upstream_failure_catalog() -> CatalogFetch:
    return CatalogFetch(quality=DataQuality.UPSTREAM_FAILURE)
