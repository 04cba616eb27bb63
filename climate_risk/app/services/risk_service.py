"""
Climate risk service — the async orchestration layer.

═══════════════════════════════════════════════════════════════════════════
PIPELINE
═══════════════════════════════════════════════════════════════════════════

    provider.fetch_bundle ─┐
    elevation.fetch_terrain├─► calculators (pure, sync) ─► reports / RiskAssessment
    catalog.fetch_events  ─┘

Every upstream read and every multi-year report goes through the optional
``ClimateCache``. With ``cache=None`` the service computes exactly the same
results, it only fetches more often.

Caching rules:
    • bundles, terrain and catalog fetches are cached in their stores only
      when no upstream fetch failed, so an outage is never pinned for the
      store's TTL
    • derived reports follow the same rule via the bundle they came from
    • values are cached as JSON-safe dicts and rebuilt with ``from_dict``
      on the way out, on both the cached and the uncached path

Invalid requests (bad coordinates, inverted or oversized date ranges,
``years`` outside 1..MAX_HISTORY_YEARS) raise ``ValidationError``; nothing
below this layer raises for data problems.
═══════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from climate_risk.app.core.cache import CacheStore, ClimateCache, make_cache_key
from climate_risk.app.core.config import Settings, settings
from climate_risk.app.core.errors import NotFoundError, ValidationError
from climate_risk.app.events.alerts import CurrentConditions, generate_weather_alerts
from climate_risk.app.events.detector import EventThresholds, detect_extreme_events, summarize_events
from climate_risk.app.historical.aggregator import (
    aggregate_monthly,
    baseline_daily_mean,
    monthly_drought_risk,
    monthly_flood_risk,
)
from climate_risk.app.historical.patterns import landslide_history_summary, summarize_history
from climate_risk.app.indices import climate_indices as ci
from climate_risk.app.ingestion.models import (
    ClimateSeries,
    DailyObservation,
    DataQuality,
    LandslideCatalogEvent,
    ObservationBundle,
    Parameter,
    TerrainProfile,
    combine_quality,
)
from climate_risk.app.ingestion.normalizer import merge_observations
from climate_risk.app.ingestion.providers import (
    CatalogFetch,
    ClimateDataProvider,
    ElevationClient,
    LandslideCatalogClient,
)
from climate_risk.app.scoring.drought import assess_drought, drought_factors_from_series
from climate_risk.app.scoring.flood import assess_flood, flood_factors_from_series
from climate_risk.app.scoring.landslide import (
    assess_landslide,
    catalog_density,
    landslide_factors_from_series,
)
from climate_risk.app.scoring.models import Hazard, RiskAssessment
from climate_risk.app.scoring.thresholds import DROUGHT_BASELINE_DAYS, DROUGHT_RECENT_DAYS

logger = logging.getLogger(__name__)

# Trailing window fetched for "current" risk; covers the drought baseline
RECENT_WINDOW_DAYS = DROUGHT_RECENT_DAYS + DROUGHT_BASELINE_DAYS


def validate_coordinates(latitude: float, longitude: float) -> None:
    if not (math.isfinite(latitude) and -90.0 <= latitude <= 90.0):
        raise ValidationError("latitude must be between -90 and 90", field="lat", value=latitude)
    if not (math.isfinite(longitude) and -180.0 <= longitude <= 180.0):
        raise ValidationError("longitude must be between -180 and 180", field="lon", value=longitude)


class ClimateRiskService:
    """Fetch, cache and score climate risk for a single point."""

    def __init__(
        self,
        provider: ClimateDataProvider,
        cache: Optional[ClimateCache] = None,
        elevation: Optional[ElevationClient] = None,
        catalog: Optional[LandslideCatalogClient] = None,
        *,
        cfg: Settings = settings,
        today: Callable[[], date] = date.today,
    ):
        self.provider = provider
        self.cache = cache
        self.elevation = elevation
        self.catalog = catalog
        self.cfg = cfg
        self.today = today

    async def close(self) -> None:
        await self.provider.close()
        if self.elevation is not None:
            await self.elevation.close()
        if self.catalog is not None:
            await self.catalog.close()

    # ── Validation ──

    def validate_period(self, start: date, end: date) -> None:
        if start > end:
            raise ValidationError(
                "start date must not be after end date",
                field="start", start=start.isoformat(), end=end.isoformat(),
            )
        max_days = self.cfg.MAX_HISTORY_YEARS * 366
        if (end - start).days > max_days:
            raise ValidationError(
                f"date range must not exceed {self.cfg.MAX_HISTORY_YEARS} years",
                field="start", start=start.isoformat(), end=end.isoformat(),
            )

    def validate_years(self, years: int) -> None:
        if not 1 <= years <= self.cfg.MAX_HISTORY_YEARS:
            raise ValidationError(
                f"years must be between 1 and {self.cfg.MAX_HISTORY_YEARS}",
                field="years", value=years,
            )

    def history_period(self, years: int) -> tuple[date, date]:
        end = self.today()
        return end - timedelta(days=365 * years), end

    # ── Cache plumbing ──

    async def _cache_get(self, store: CacheStore, key: str) -> Optional[Any]:
        if self.cache is None:
            return None
        return await self.cache.get(store, key)

    async def _cache_set(self, store: CacheStore, key: str, value: Any) -> None:
        if self.cache is not None:
            await self.cache.set(store, key, value)

    # ═══════════════════════════════════════════════════════════════════════
    # Upstream reads
    # ═══════════════════════════════════════════════════════════════════════

    async def fetch_observations(
        self,
        latitude: float,
        longitude: float,
        start: date,
        end: date,
    ) -> ObservationBundle:
        """Daily series for the period, from cache or the provider."""
        key = make_cache_key("bundle", {
            "lat": round(latitude, 4), "lon": round(longitude, 4),
            "start": start.isoformat(), "end": end.isoformat(),
            "provider": self.provider.source,
        })
        cached = await self._cache_get(CacheStore.HISTORICAL_WEATHER, key)
        if cached is not None:
            logger.debug("Bundle cache hit", extra={"lat": latitude, "lon": longitude})
            return ObservationBundle.from_dict(cached)

        bundle = await self.provider.fetch_bundle(latitude, longitude, start, end)
        payload = bundle.to_dict()
        if not _has_upstream_failure(bundle):
            await self._cache_set(CacheStore.HISTORICAL_WEATHER, key, payload)
        return ObservationBundle.from_dict(payload)

    async def fetch_terrain(self, latitude: float, longitude: float) -> Optional[TerrainProfile]:
        if self.elevation is None:
            return None
        key = make_cache_key("terrain", {"lat": round(latitude, 4), "lon": round(longitude, 4)})
        cached = await self._cache_get(CacheStore.HISTORICAL_WEATHER, key)
        if cached is not None:
            return TerrainProfile.from_dict(cached)

        terrain = await self.elevation.fetch_terrain(latitude, longitude)
        if terrain.quality != DataQuality.UPSTREAM_FAILURE:
            await self._cache_set(CacheStore.HISTORICAL_WEATHER, key, terrain.to_dict())
        return terrain

    async def fetch_landslide_catalog(self, latitude: float, longitude: float) -> Optional[CatalogFetch]:
        if self.catalog is None:
            return None
        radius = self.cfg.LANDSLIDE_SEARCH_RADIUS_KM
        since = self.today() - timedelta(days=365 * self.cfg.LANDSLIDE_LOOKBACK_YEARS)
        key = make_cache_key("landslides", {
            "lat": round(latitude, 4), "lon": round(longitude, 4),
            "radius": radius, "since": since.isoformat(),
        })
        cached = await self._cache_get(CacheStore.LANDSLIDES, key)
        if cached is not None:
            return CatalogFetch(
                events=[LandslideCatalogEvent.from_dict(e) for e in cached["events"]],
                quality=DataQuality(cached["quality"]),
            )

        fetch = await self.catalog.fetch_events(latitude, longitude, radius, since=since)
        if fetch.quality != DataQuality.UPSTREAM_FAILURE:
            await self._cache_set(CacheStore.LANDSLIDES, key, {
                "events": [e.to_dict() for e in fetch.events],
                "quality": fetch.quality.value,
            })
        return fetch

    async def _recent_bundle(self, latitude: float, longitude: float) -> ObservationBundle:
        end = self.today()
        return await self.fetch_observations(
            latitude, longitude, end - timedelta(days=RECENT_WINDOW_DAYS - 1), end,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # Climate indices
    # ═══════════════════════════════════════════════════════════════════════

    async def indices_report(
        self,
        latitude: float,
        longitude: float,
        start: date,
        end: date,
        timescale: int = 3,
    ) -> Dict[str, Any]:
        """
        SPI / SPEI on complete monthly totals, simplified PDSI on the daily
        water balance, and heat index / wind chill for the latest usable day,
        each with its series over the period.
        """
        validate_coordinates(latitude, longitude)
        self.validate_period(start, end)
        if timescale < 1:
            raise ValidationError("timescale must be at least 1", field="timescale", value=timescale)

        key = make_cache_key("indices", {
            "lat": round(latitude, 4), "lon": round(longitude, 4),
            "start": start.isoformat(), "end": end.isoformat(), "timescale": timescale,
        })
        cached = await self._cache_get(CacheStore.CLIMATE_INDICES, key)
        if cached is not None:
            return cached

        started = time.monotonic()
        bundle = await self.fetch_observations(latitude, longitude, start, end)
        report = build_indices_report(bundle, timescale)
        logger.info(
            "Indices computed in %.0f ms", (time.monotonic() - started) * 1000,
            extra={"lat": latitude, "lon": longitude, "data_quality": report["data_quality"]},
        )
        if not _has_upstream_failure(bundle):
            await self._cache_set(CacheStore.CLIMATE_INDICES, key, report)
        return report

    # ═══════════════════════════════════════════════════════════════════════
    # Extreme events
    # ═══════════════════════════════════════════════════════════════════════

    async def events_report(
        self,
        latitude: float,
        longitude: float,
        start: date,
        end: date,
        thresholds: Optional[EventThresholds] = None,
    ) -> Dict[str, Any]:
        validate_coordinates(latitude, longitude)
        self.validate_period(start, end)
        t = thresholds or EventThresholds()

        key = make_cache_key("events", {
            "lat": round(latitude, 4), "lon": round(longitude, 4),
            "start": start.isoformat(), "end": end.isoformat(), **asdict(t),
        })
        cached = await self._cache_get(CacheStore.EXTREME_EVENTS, key)
        if cached is not None:
            return cached

        bundle = await self.fetch_observations(latitude, longitude, start, end)
        events = detect_extreme_events(merge_observations(bundle.series), t)
        report = {
            "location": {"lat": latitude, "lon": longitude},
            "period": {"start": bundle.start_date, "end": bundle.end_date},
            "data_quality": bundle.quality.value,
            "thresholds": asdict(t),
            "events": [e.to_dict() for e in events],
            "summary": summarize_events(events).to_dict(),
        }
        logger.info("Detected %d events", len(events),
                    extra={"lat": latitude, "lon": longitude})
        if not _has_upstream_failure(bundle):
            await self._cache_set(CacheStore.EXTREME_EVENTS, key, report)
        return report

    async def current_alerts(
        self,
        latitude: float,
        longitude: float,
        issued_at: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Alerts from the latest observed day; never cached."""
        validate_coordinates(latitude, longitude)
        bundle = await self._recent_bundle(latitude, longitude)
        days = merge_observations(bundle.series)
        conditions = CurrentConditions(
            latitude=latitude,
            longitude=longitude,
            temperature=_latest(days, "temperature_max", "temperature"),
            soil_moisture=_latest(days, "soil_moisture"),
            precipitation=_latest(days, "precipitation"),
        )
        alerts = generate_weather_alerts(conditions, issued_at or datetime.now(timezone.utc))
        return [a.to_dict() for a in alerts]

    # ═══════════════════════════════════════════════════════════════════════
    # Current hazard risk
    # ═══════════════════════════════════════════════════════════════════════

    async def flood_risk(
        self,
        latitude: float,
        longitude: float,
        slope: Optional[float] = None,
    ) -> RiskAssessment:
        validate_coordinates(latitude, longitude)
        bundle = await self._recent_bundle(latitude, longitude)
        terrain = _with_slope(await self.fetch_terrain(latitude, longitude), slope)

        precip = bundle.get(Parameter.PRECIPITATION)
        factors = flood_factors_from_series(precip, terrain)
        qualities = [precip.quality] + ([terrain.quality] if terrain else [])
        assessment = assess_flood(factors, combine_quality(qualities))
        _log_assessment(assessment, latitude, longitude)
        return assessment

    async def drought_risk(self, latitude: float, longitude: float) -> RiskAssessment:
        validate_coordinates(latitude, longitude)
        bundle = await self._recent_bundle(latitude, longitude)

        precip = bundle.get(Parameter.PRECIPITATION)
        temperature = bundle.get(Parameter.TEMPERATURE)
        factors = drought_factors_from_series(precip, temperature, self.cfg.NORMAL_TEMPERATURE_C)
        assessment = assess_drought(factors, combine_quality([precip.quality, temperature.quality]))
        _log_assessment(assessment, latitude, longitude)
        return assessment

    async def landslide_risk(
        self,
        latitude: float,
        longitude: float,
        slope: Optional[float] = None,
        ndvi: Optional[float] = None,
        recent_seismic_activity: bool = False,
    ) -> RiskAssessment:
        validate_coordinates(latitude, longitude)
        bundle = await self._recent_bundle(latitude, longitude)
        terrain = _with_slope(await self.fetch_terrain(latitude, longitude), slope)
        catalog = await self.fetch_landslide_catalog(latitude, longitude)

        density: Optional[float] = None
        qualities = [bundle.get(Parameter.PRECIPITATION).quality]
        if catalog is not None:
            qualities.append(catalog.quality)
            if catalog.quality != DataQuality.UPSTREAM_FAILURE:
                density = catalog_density(
                    latitude, longitude, catalog.events, self.cfg.LANDSLIDE_SEARCH_RADIUS_KM,
                )
        if terrain is not None:
            qualities.append(terrain.quality)

        factors = landslide_factors_from_series(
            bundle.get(Parameter.PRECIPITATION),
            bundle.get(Parameter.SOIL_MOISTURE),
            terrain,
            historical_density=density,
            ndvi=ndvi,
            recent_seismic_activity=recent_seismic_activity,
        )
        assessment = assess_landslide(factors, combine_quality(qualities))
        _log_assessment(assessment, latitude, longitude)
        return assessment

    async def risk(self, hazard: str, latitude: float, longitude: float, **options: Any) -> RiskAssessment:
        """Dispatch on a hazard name."""
        try:
            kind = Hazard(hazard)
        except ValueError:
            raise NotFoundError("hazard", hazard=hazard) from None
        if kind == Hazard.FLOOD:
            return await self.flood_risk(latitude, longitude, slope=options.get("slope"))
        if kind == Hazard.DROUGHT:
            return await self.drought_risk(latitude, longitude)
        return await self.landslide_risk(
            latitude, longitude,
            slope=options.get("slope"),
            ndvi=options.get("ndvi"),
            recent_seismic_activity=bool(options.get("recent_seismic_activity", False)),
        )

    # ═══════════════════════════════════════════════════════════════════════
    # Historical analysis
    # ═══════════════════════════════════════════════════════════════════════

    async def _history(
        self,
        kind: str,
        store: CacheStore,
        latitude: float,
        longitude: float,
        years: int,
        build: Callable[[List[DailyObservation]], Dict[str, Any]],
    ) -> Dict[str, Any]:
        validate_coordinates(latitude, longitude)
        self.validate_years(years)
        start, end = self.history_period(years)

        key = make_cache_key(kind, {
            "lat": round(latitude, 4), "lon": round(longitude, 4),
            "start": start.isoformat(), "end": end.isoformat(),
        })
        cached = await self._cache_get(store, key)
        if cached is not None:
            return cached

        bundle = await self.fetch_observations(latitude, longitude, start, end)
        report = {
            "location": {"lat": latitude, "lon": longitude},
            "years": years,
            "period": {"start": bundle.start_date, "end": bundle.end_date},
            "data_quality": bundle.quality.value,
            **build(merge_observations(bundle.series)),
        }
        if not _has_upstream_failure(bundle):
            await self._cache_set(store, key, report)
        return report

    async def historical_monthly(self, latitude: float, longitude: float, years: int) -> Dict[str, Any]:
        def build(days: List[DailyObservation]) -> Dict[str, Any]:
            return {"months": [m.to_dict() for m in aggregate_monthly(days)]}

        return await self._history(
            "history_monthly", CacheStore.HISTORICAL_AGGREGATES, latitude, longitude, years, build,
        )

    async def historical_flood(self, latitude: float, longitude: float, years: int) -> Dict[str, Any]:
        def build(days: List[DailyObservation]) -> Dict[str, Any]:
            records = monthly_flood_risk(days)
            return {
                "months": [r.to_dict() for r in records],
                "summary": summarize_history(records).to_dict(),
            }

        return await self._history(
            "history_flood", CacheStore.FLOODS, latitude, longitude, years, build,
        )

    async def historical_drought(
        self,
        latitude: float,
        longitude: float,
        years: int,
        baseline_daily: Optional[float] = None,
    ) -> Dict[str, Any]:
        def build(days: List[DailyObservation]) -> Dict[str, Any]:
            baseline = baseline_daily if baseline_daily is not None else baseline_daily_mean(days)
            records = monthly_drought_risk(days, baseline)
            return {
                "baseline_daily": round(baseline, 3),
                "months": [r.to_dict() for r in records],
                "summary": summarize_history(records).to_dict(),
            }

        kind = "history_drought" if baseline_daily is None else f"history_drought_b{baseline_daily:g}"
        return await self._history(
            kind, CacheStore.HISTORICAL_AGGREGATES, latitude, longitude, years, build,
        )

    async def landslide_history(self, latitude: float, longitude: float) -> Dict[str, Any]:
        validate_coordinates(latitude, longitude)
        fetch = await self.fetch_landslide_catalog(latitude, longitude)
        if fetch is None:
            fetch = CatalogFetch(quality=DataQuality.NO_DATA)
        summary = landslide_history_summary(fetch.events, self.cfg.LANDSLIDE_LOOKBACK_YEARS)
        return {
            "location": {"lat": latitude, "lon": longitude},
            "radius_km": self.cfg.LANDSLIDE_SEARCH_RADIUS_KM,
            "lookback_years": self.cfg.LANDSLIDE_LOOKBACK_YEARS,
            "data_quality": fetch.quality.value,
            **summary.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _has_upstream_failure(bundle: ObservationBundle) -> bool:
    return any(s.quality == DataQuality.UPSTREAM_FAILURE for s in bundle.series.values())


def _with_slope(terrain: Optional[TerrainProfile], slope: Optional[float]) -> Optional[TerrainProfile]:
    """A caller-supplied slope overrides the sampled one."""
    if slope is None:
        return terrain
    if terrain is None:
        return TerrainProfile(slope=slope)
    return TerrainProfile(
        elevation=terrain.elevation, slope=slope, aspect=terrain.aspect, quality=terrain.quality,
    )


def _latest(days: Sequence[DailyObservation], *names: str) -> Optional[float]:
    """Most recent reading of the first attribute that has one."""
    for name in names:
        for obs in reversed(days):
            value = getattr(obs, name)
            if value is not None:
                return value
    return None


def _log_assessment(assessment: RiskAssessment, latitude: float, longitude: float) -> None:
    logger.info(
        "%s risk %.3f (%s)",
        assessment.hazard.value, assessment.risk_score, assessment.risk_level.value,
        extra={
            "lat": latitude, "lon": longitude,
            "hazard": assessment.hazard.value,
            "risk_score": round(assessment.risk_score, 4),
            "data_quality": assessment.data_quality.value,
        },
    )


def _latest_pair(
    days: Sequence[DailyObservation], first: Sequence[str], second: str,
) -> Optional[tuple[str, float, float]]:
    for obs in reversed(days):
        a = next((getattr(obs, n) for n in first if getattr(obs, n) is not None), None)
        b = getattr(obs, second)
        if a is not None and b is not None:
            return obs.date, a, b
    return None


def _first_available(bundle: ObservationBundle, *parameters: Parameter) -> ClimateSeries:
    for parameter in parameters:
        series = bundle.get(parameter)
        if series.is_available:
            return series
    return bundle.get(parameters[-1])


def build_indices_report(bundle: ObservationBundle, timescale: int = 3) -> Dict[str, Any]:
    precip = bundle.get(Parameter.PRECIPITATION)
    pet = bundle.get(Parameter.EVAPOTRANSPIRATION)

    monthly_precip = ci.monthly_totals(precip, complete_only=True)
    spi_entries = ci.spi_series(precip, timescale, period="monthly")
    report: Dict[str, Any] = {
        "location": {"lat": bundle.latitude, "lon": bundle.longitude},
        "period": {"start": bundle.start_date, "end": bundle.end_date},
        "timescale": timescale,
        "data_quality": bundle.quality.value,
        "spi": ci.spi([p.value for p in monthly_precip], timescale).to_dict(),
        "spi_series": [e.to_dict() for e in spi_entries],
        "drought_analysis": ci.analyze_drought(spi_entries).to_dict(),
    }

    if pet.is_available:
        monthly_pet = {p.date: p.value for p in ci.monthly_totals(pet, complete_only=True)}
        months = [p for p in monthly_precip if p.date in monthly_pet]
        report["spei"] = ci.spei(
            [p.value for p in months], [monthly_pet[p.date] for p in months], timescale,
        ).to_dict()
        daily_pet = pet.as_mapping()
        paired = [p for p in precip.points if p.date in daily_pet]
        report["pdsi"] = ci.pdsi(
            [p.value for p in paired], [daily_pet[p.date] for p in paired],
        ).to_dict()
        report["spei_series"] = [
            e.to_dict() for e in ci.spei_series(precip, pet, timescale, period="monthly")
        ]
        report["pdsi_series"] = [e.to_dict() for e in ci.pdsi_series(precip, pet)]
    else:
        # No PET: both water-balance indices report insufficient data
        report["spei"] = ci.spei([], [], timescale).to_dict()
        report["pdsi"] = ci.pdsi([], []).to_dict()
        report["spei_series"] = []
        report["pdsi_series"] = []

    report["heat_index_series"] = [
        e.to_dict() for e in ci.heat_index_series(
            _first_available(bundle, Parameter.TEMPERATURE_MAX, Parameter.TEMPERATURE),
            bundle.get(Parameter.HUMIDITY),
        )
    ]
    report["wind_chill_series"] = [
        e.to_dict() for e in ci.wind_chill_series(
            _first_available(bundle, Parameter.TEMPERATURE_MIN, Parameter.TEMPERATURE),
            bundle.get(Parameter.WIND_SPEED),
        )
    ]

    days = merge_observations(bundle.series)
    hot = _latest_pair(days, ("temperature_max", "temperature"), "humidity")
    if hot is not None:
        day, t_c, rh = hot
        report["heat_index"] = {"date": day, **ci.heat_index(ci.celsius_to_fahrenheit(t_c), rh).to_dict()}
    else:
        report["heat_index"] = None

    cold = _latest_pair(days, ("temperature_min", "temperature"), "wind_speed")
    if cold is not None:
        day, t_c, wind = cold
        report["wind_chill"] = {
            "date": day,
            **ci.wind_chill(ci.celsius_to_fahrenheit(t_c), wind * ci.MS_TO_MPH).to_dict(),
        }
    else:
        report["wind_chill"] = None
    return report
