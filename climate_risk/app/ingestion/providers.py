"""
Upstream data providers — daily climate series, terrain and landslide catalog.

═══════════════════════════════════════════════════════════════════════════
FETCH CONTRACT
═══════════════════════════════════════════════════════════════════════════

    fetch_series(parameter, lat, lon, start, end) → ClimateSeries

A provider never raises into a calculator. Transport errors, HTTP errors,
malformed payloads and timeouts are retried where it makes sense, logged,
and finally returned as an empty series tagged ``upstream_failure``.

Providers:
    OpenMeteoArchiveProvider   archive-api.open-meteo.com (default)
    NasaPowerProvider          power.larc.nasa.gov (YYYYMMDD keys, −999 fill)
    ElevationClient            api.open-meteo.com/v1/elevation (terrain)
    LandslideCatalogClient     NASA Global Landslide Catalog (Socrata)

═══════════════════════════════════════════════════════════════════════════
RETRY POLICY
═══════════════════════════════════════════════════════════════════════════

    429            → wait base·2^(attempt+1), retry
    other 4xx      → fail immediately (bad coordinates, bad dates)
    5xx / network  → wait base·2^attempt, retry
    after retries  → ExternalServiceError, converted at fetch_series
═══════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from climate_risk.app.core.config import Settings, settings
from climate_risk.app.core.errors import ExternalServiceError
from climate_risk.app.spatial.radius_utils import Coordinate, bounding_box

from .models import (
    ClimateSeries,
    DataQuality,
    LandslideCatalogEvent,
    ObservationBundle,
    Parameter,
    TerrainProfile,
)
from .normalizer import coerce_value, normalize_columns, normalize_date, normalize_series

logger = logging.getLogger(__name__)


DEFAULT_PARAMETERS: Sequence[Parameter] = tuple(Parameter)

# Metres per degree of latitude; longitude scales with cos(lat)
METRES_PER_DEG_LAT = 110_540.0
METRES_PER_DEG_LON_EQUATOR = 111_320.0
TERRAIN_SAMPLE_OFFSET_DEG = 0.001  # ~100 m


class BaseHTTPClient:
    """Shared httpx client lifecycle and retrying GET."""

    service_name = "http"

    def __init__(
        self,
        *,
        timeout: float = settings.WEATHER_FETCH_TIMEOUT,
        max_retries: int = settings.FETCH_MAX_RETRIES,
        backoff_base: float = settings.FETCH_BACKOFF_BASE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                client = await self._get_client()
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status == 429:
                    wait_time = self.backoff_base * 2 ** (attempt + 1)
                    logger.warning(
                        "%s rate limited, waiting %.1f seconds (attempt %d/%d)",
                        self.service_name, wait_time, attempt + 1, self.max_retries,
                    )
                elif status < 500:
                    raise ExternalServiceError(
                        self.service_name, f"HTTP {status}", status_code=status,
                    ) from e
                else:
                    wait_time = self.backoff_base * 2 ** attempt
                    logger.warning(
                        "%s returned %d, retrying in %.1f seconds (attempt %d/%d)",
                        self.service_name, status, wait_time, attempt + 1, self.max_retries,
                    )
            except (httpx.TransportError, ValueError) as e:
                last_error = e
                wait_time = self.backoff_base * 2 ** attempt
                logger.warning(
                    "%s request failed: %s, retrying in %.1f seconds (attempt %d/%d)",
                    self.service_name, e, wait_time, attempt + 1, self.max_retries,
                )

            if attempt + 1 < self.max_retries:
                await asyncio.sleep(wait_time)

        raise ExternalServiceError(
            self.service_name,
            f"failed after {self.max_retries} attempts: {last_error}",
        )


# ═══════════════════════════════════════════════════════════════════════════
# Climate series providers
# ═══════════════════════════════════════════════════════════════════════════

class ClimateDataProvider(BaseHTTPClient):
    """Base class: one ``fetch_series`` per parameter, concurrent bundles."""

    source = "abstract"

    async def _fetch_series(
        self, parameter: Parameter, latitude: float, longitude: float, start: date, end: date,
    ) -> ClimateSeries:
        raise NotImplementedError

    async def fetch_series(
        self,
        parameter: Parameter | str,
        latitude: float,
        longitude: float,
        start: date,
        end: date,
    ) -> ClimateSeries:
        parameter = Parameter(parameter)
        try:
            series = await self._fetch_series(parameter, latitude, longitude, start, end)
        except (ExternalServiceError, httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Fetch of %s from %s failed: %s", parameter.value, self.source, e,
                extra={"lat": latitude, "lon": longitude, "parameter": parameter.value,
                       "provider": self.source},
            )
            return ClimateSeries.unavailable(parameter.value, DataQuality.UPSTREAM_FAILURE, self.source)

        logger.debug(
            "Fetched %d %s samples from %s", len(series), parameter.value, self.source,
            extra={"lat": latitude, "lon": longitude, "parameter": parameter.value},
        )
        return series

    async def fetch_bundle(
        self,
        latitude: float,
        longitude: float,
        start: date,
        end: date,
        parameters: Iterable[Parameter] = DEFAULT_PARAMETERS,
    ) -> ObservationBundle:
        """
        Fetch every parameter concurrently. A fetch that raises or exceeds
        the timeout becomes an ``upstream_failure`` series; the rest of the
        bundle is still returned.
        """
        params = [Parameter(p) for p in parameters]
        results = await asyncio.gather(
            *(
                asyncio.wait_for(
                    self.fetch_series(p, latitude, longitude, start, end),
                    timeout=self.timeout,
                )
                for p in params
            ),
            return_exceptions=True,
        )

        series: Dict[str, ClimateSeries] = {}
        for p, result in zip(params, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    "Fetch of %s aborted: %r", p.value, result,
                    extra={"lat": latitude, "lon": longitude, "parameter": p.value},
                )
                result = ClimateSeries.unavailable(p.value, DataQuality.UPSTREAM_FAILURE, self.source)
            series[p.value] = result

        bundle = ObservationBundle(
            latitude=latitude,
            longitude=longitude,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            series=series,
            source=self.source,
        )
        logger.info(
            "Fetched bundle %s..%s from %s (quality=%s)",
            bundle.start_date, bundle.end_date, self.source, bundle.quality.value,
            extra={"lat": latitude, "lon": longitude, "data_quality": bundle.quality.value},
        )
        return bundle


class OpenMeteoArchiveProvider(ClimateDataProvider):
    """Open-Meteo historical archive, daily resolution."""

    service_name = "open-meteo-archive"
    source = "open_meteo"

    DAILY_VARIABLES: Dict[Parameter, str] = {
        Parameter.PRECIPITATION: "precipitation_sum",
        Parameter.TEMPERATURE: "temperature_2m_mean",
        Parameter.TEMPERATURE_MAX: "temperature_2m_max",
        Parameter.TEMPERATURE_MIN: "temperature_2m_min",
        Parameter.HUMIDITY: "relative_humidity_2m_mean",
        Parameter.WIND_SPEED: "wind_speed_10m_max",
        Parameter.EVAPOTRANSPIRATION: "et0_fao_evapotranspiration",
        Parameter.SOIL_MOISTURE: "soil_moisture_0_to_7cm_mean",
    }

    def __init__(self, base_url: str = settings.OPEN_METEO_ARCHIVE_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def _fetch_series(
        self, parameter: Parameter, latitude: float, longitude: float, start: date, end: date,
    ) -> ClimateSeries:
        variable = self.DAILY_VARIABLES[parameter]
        data = await self._get_json(self.base_url, {
            "latitude": latitude,
            "longitude": longitude,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "daily": variable,
            "wind_speed_unit": "ms",
            "timezone": "auto",
        })
        daily = data.get("daily") or {}
        return normalize_columns(parameter, daily.get("time", []), daily.get(variable), source=self.source)


class NasaPowerProvider(ClimateDataProvider):
    """
    NASA POWER daily point API (community RE).

    Values are keyed by compact ``YYYYMMDD`` dates and missing samples carry
    the −999 fill value; both are handled by the normalizer.
    """

    service_name = "nasa-power"
    source = "nasa_power"

    PARAMETERS: Dict[Parameter, str] = {
        Parameter.PRECIPITATION: "PRECTOTCORR",
        Parameter.TEMPERATURE: "T2M",
        Parameter.TEMPERATURE_MAX: "T2M_MAX",
        Parameter.TEMPERATURE_MIN: "T2M_MIN",
        Parameter.HUMIDITY: "RH2M",
        Parameter.WIND_SPEED: "WS10M",
        Parameter.SOIL_MOISTURE: "GWETTOP",
    }

    def __init__(self, base_url: str = settings.NASA_POWER_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def _fetch_series(
        self, parameter: Parameter, latitude: float, longitude: float, start: date, end: date,
    ) -> ClimateSeries:
        code = self.PARAMETERS.get(parameter)
        if code is None:
            return ClimateSeries.unavailable(parameter.value, DataQuality.NO_DATA, self.source)

        data = await self._get_json(self.base_url, {
            "parameters": code,
            "latitude": latitude,
            "longitude": longitude,
            "start": start.strftime("%Y%m%d"),
            "end": end.strftime("%Y%m%d"),
            "community": "RE",
            "format": "JSON",
        })
        values = data["properties"]["parameter"].get(code) or {}
        return normalize_series(parameter, values, source=self.source)


def build_provider(cfg: Settings = settings) -> ClimateDataProvider:
    kwargs = {
        "timeout": cfg.WEATHER_FETCH_TIMEOUT,
        "max_retries": cfg.FETCH_MAX_RETRIES,
        "backoff_base": cfg.FETCH_BACKOFF_BASE,
    }
    if cfg.DATA_PROVIDER == "nasa_power":
        return NasaPowerProvider(cfg.NASA_POWER_URL, **kwargs)
    return OpenMeteoArchiveProvider(cfg.OPEN_METEO_ARCHIVE_URL, **kwargs)


# ═══════════════════════════════════════════════════════════════════════════
# Terrain
# ═══════════════════════════════════════════════════════════════════════════

def terrain_from_samples(
    center: float,
    north: float,
    south: float,
    east: float,
    west: float,
    latitude: float,
    offset_deg: float = TERRAIN_SAMPLE_OFFSET_DEG,
) -> TerrainProfile:
    """
    Slope and aspect from a centred finite difference over four cardinal
    neighbours. Aspect is the downslope direction, degrees clockwise from
    north.
    """
    dx_m = 2 * METRES_PER_DEG_LON_EQUATOR * offset_deg * max(math.cos(math.radians(latitude)), 1e-6)
    dy_m = 2 * METRES_PER_DEG_LAT * offset_deg
    dz_dx = (east - west) / dx_m
    dz_dy = (north - south) / dy_m

    slope = math.degrees(math.atan(math.hypot(dz_dx, dz_dy)))
    aspect = math.degrees(math.atan2(-dz_dx, -dz_dy)) % 360.0
    return TerrainProfile(elevation=center, slope=min(90.0, slope), aspect=aspect)


class ElevationClient(BaseHTTPClient):
    """Five-point elevation sample → ``TerrainProfile``."""

    service_name = "open-meteo-elevation"

    def __init__(self, base_url: str = settings.OPEN_METEO_ELEVATION_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def fetch_terrain(self, latitude: float, longitude: float) -> TerrainProfile:
        off = TERRAIN_SAMPLE_OFFSET_DEG
        points = [
            (latitude, longitude),
            (latitude + off, longitude),
            (latitude - off, longitude),
            (latitude, longitude + off),
            (latitude, longitude - off),
        ]
        try:
            data = await self._get_json(self.base_url, {
                "latitude": ",".join(f"{p[0]:.6f}" for p in points),
                "longitude": ",".join(f"{p[1]:.6f}" for p in points),
            })
            if not isinstance(data, dict):
                raise ValueError(f"unexpected elevation payload type {type(data).__name__}")
            elevations = [coerce_value(v) for v in data.get("elevation") or []]
        except (ExternalServiceError, httpx.HTTPError, TypeError, ValueError) as e:
            logger.warning("Terrain fetch failed: %s", e, extra={"lat": latitude, "lon": longitude})
            return TerrainProfile(quality=DataQuality.UPSTREAM_FAILURE)

        if len(elevations) != 5 or elevations[0] is None:
            return TerrainProfile(quality=DataQuality.NO_DATA)
        if any(e is None for e in elevations[1:]):
            return TerrainProfile(elevation=elevations[0], quality=DataQuality.PARTIAL)
        return terrain_from_samples(*elevations, latitude=latitude, offset_deg=off)


# ═══════════════════════════════════════════════════════════════════════════
# Landslide catalog
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CatalogFetch:
    events: List[LandslideCatalogEvent] = field(default_factory=list)
    quality: DataQuality = DataQuality.OK


def _int_or_zero(raw: Any) -> int:
    value = coerce_value(raw)
    return int(value) if value is not None and value > 0 else 0


def parse_catalog_record(raw: Dict[str, Any]) -> Optional[LandslideCatalogEvent]:
    lat = coerce_value(raw.get("latitude"))
    lon = coerce_value(raw.get("longitude"))
    day = normalize_date(raw.get("event_date"))
    if lat is None or lon is None or day is None:
        return None
    return LandslideCatalogEvent(
        event_id=str(raw.get("event_id") or f"{day}:{lat:.4f}:{lon:.4f}"),
        date=day,
        latitude=lat,
        longitude=lon,
        title=raw.get("event_title") or "",
        category=raw.get("landslide_category") or "unknown",
        trigger=raw.get("landslide_trigger") or "unknown",
        size=raw.get("landslide_size") or "unknown",
        fatalities=_int_or_zero(raw.get("fatality_count")),
        injuries=_int_or_zero(raw.get("injury_count")),
    )


class LandslideCatalogClient(BaseHTTPClient):
    """Bounding-box query against the NASA Global Landslide Catalog."""

    service_name = "nasa-landslide-catalog"
    PAGE_LIMIT = 5000

    def __init__(self, base_url: str = settings.LANDSLIDE_CATALOG_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url

    async def fetch_events(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        since: Optional[date] = None,
    ) -> CatalogFetch:
        min_lat, max_lat, min_lon, max_lon = bounding_box(Coordinate(latitude, longitude), radius_km)
        where = (
            f"latitude > {min_lat:.5f} AND latitude < {max_lat:.5f} "
            f"AND longitude > {min_lon:.5f} AND longitude < {max_lon:.5f}"
        )
        if since is not None:
            where += f" AND event_date >= '{since.isoformat()}'"

        try:
            rows = await self._get_json(self.base_url, {
                "$where": where,
                "$order": "event_date DESC",
                "$limit": self.PAGE_LIMIT,
            })
            if not isinstance(rows, list):
                raise ValueError(f"unexpected catalog payload type {type(rows).__name__}")
        except (ExternalServiceError, httpx.HTTPError, ValueError) as e:
            logger.warning("Landslide catalog fetch failed: %s", e,
                           extra={"lat": latitude, "lon": longitude})
            return CatalogFetch(quality=DataQuality.UPSTREAM_FAILURE)

        events = [
            e for e in (parse_catalog_record(r) for r in rows if isinstance(r, dict)) if e is not None
        ]
        logger.info("Landslide catalog returned %d events", len(events),
                    extra={"lat": latitude, "lon": longitude})
        return CatalogFetch(events=events, quality=DataQuality.OK)
