"""
Tests for ingestion: normalisation and the upstream HTTP clients.

Covers:
    • Date formats, sentinel values and series quality
    • Merging series into daily observations
    • Open-Meteo and NASA POWER parsing over a mocked transport
    • Retry policy: 5xx and 429 retried, other 4xx fail fast
    • Partial bundles when one parameter fails
    • Terrain slope/aspect and the landslide catalogue client
"""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from climate_risk.app.ingestion.models import DataQuality, Parameter
from climate_risk.app.ingestion.normalizer import (
    merge_observations,
    normalize_columns,
    normalize_date,
    normalize_series,
    series_from_observations,
)
from climate_risk.app.ingestion.providers import (
    ElevationClient,
    LandslideCatalogClient,
    NasaPowerProvider,
    OpenMeteoArchiveProvider,
    build_provider,
    parse_catalog_record,
    terrain_from_samples,
)
from climate_risk.app.core.config import Settings

START = date(2024, 1, 1)
END = date(2024, 1, 3)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ═══════════════════════════════════════════════════════════════════════════
# Normalizer
# ═══════════════════════════════════════════════════════════════════════════

class TestNormalizeDate:
    def test_formats(self):
        assert normalize_date("20240105") == "2024-01-05"
        assert normalize_date("2024-01-05") == "2024-01-05"
        assert normalize_date("2024-01-05T12:00") == "2024-01-05"
        assert normalize_date(date(2024, 1, 5)) == "2024-01-05"

    def test_unparseable(self):
        assert normalize_date("not a date") is None
        assert normalize_date(20240105) is None


class TestNormalizeSeries:
    def test_all_valid_is_ok(self):
        s = normalize_series("precipitation", {"20240102": 2.0, "20240101": 1.0})
        assert s.quality == DataQuality.OK
        assert s.dates == ["2024-01-01", "2024-01-02"]

    def test_sentinels_are_dropped(self):
        s = normalize_series("temperature", {"20240101": -999, "20240102": 21.5})
        assert s.quality == DataQuality.PARTIAL
        assert s.values == [21.5]

    def test_out_of_range_values(self):
        assert normalize_series("precipitation", {"2024-01-01": -1.0}).quality == DataQuality.NO_DATA
        assert normalize_series("humidity", {"2024-01-01": 120.0}).quality == DataQuality.NO_DATA
        assert normalize_series("soil_moisture", {"2024-01-01": 1.0}).values == [1.0]

    def test_nan_and_bool_rejected(self):
        s = normalize_series("wind_speed", [("2024-01-01", float("nan")), ("2024-01-02", True),
                                            ("2024-01-03", "4.5")])
        assert s.values == [4.5]

    def test_last_duplicate_wins(self):
        s = normalize_series("precipitation", [("2024-01-01", 1.0), ("20240101", 3.0)])
        assert s.values == [3.0]

    def test_missing_column(self):
        s = normalize_columns("precipitation", ["2024-01-01"], None)
        assert s.quality == DataQuality.NO_DATA
        assert not s.is_available


class TestMergeObservations:
    def test_outer_join(self):
        rain = normalize_series("precipitation", {"2024-01-01": 1.0, "2024-01-02": 2.0})
        temp = normalize_series("temperature", {"2024-01-02": 20.0, "2024-01-03": 21.0})
        obs = merge_observations({"precipitation": rain, "temperature": temp})
        assert [o.date for o in obs] == ["2024-01-01", "2024-01-02", "2024-01-03"]
        assert obs[0].temperature is None
        assert obs[1].precipitation == 2.0 and obs[1].temperature == 20.0
        assert series_from_observations(obs, Parameter.TEMPERATURE).values == [20.0, 21.0]


# ═══════════════════════════════════════════════════════════════════════════
# Providers
# ═══════════════════════════════════════════════════════════════════════════

class TestOpenMeteoProvider:
    def test_parses_daily_columns(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json={"daily": {
                "time": ["2024-01-01", "2024-01-02", "2024-01-03"],
                "precipitation_sum": [1.0, None, 2.5],
            }})

        provider = OpenMeteoArchiveProvider(client=mock_client(handler), backoff_base=0)
        series = asyncio.run(provider.fetch_series("precipitation", -1.94, 30.06, START, END))
        assert series.quality == DataQuality.PARTIAL
        assert series.values == [1.0, 2.5]
        assert series.source == "open_meteo"
        assert seen["daily"] == "precipitation_sum"
        assert seen["start_date"] == "2024-01-01"
        assert seen["wind_speed_unit"] == "ms"

    def test_server_errors_are_retried_then_reported(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(503)

        provider = OpenMeteoArchiveProvider(client=mock_client(handler), max_retries=3, backoff_base=0)
        series = asyncio.run(provider.fetch_series("precipitation", 0.0, 0.0, START, END))
        assert len(calls) == 3
        assert series.quality == DataQuality.UPSTREAM_FAILURE
        assert not series.is_available

    def test_client_errors_fail_fast(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(400, json={"reason": "bad coordinates"})

        provider = OpenMeteoArchiveProvider(client=mock_client(handler), max_retries=3, backoff_base=0)
        series = asyncio.run(provider.fetch_series("precipitation", 0.0, 0.0, START, END))
        assert len(calls) == 1
        assert series.quality == DataQuality.UPSTREAM_FAILURE

    def test_rate_limit_then_success(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(429)
            return httpx.Response(200, json={"daily": {"time": ["2024-01-01"],
                                                       "temperature_2m_mean": [18.0]}})

        provider = OpenMeteoArchiveProvider(client=mock_client(handler), backoff_base=0)
        series = asyncio.run(provider.fetch_series("temperature", 0.0, 0.0, START, END))
        assert len(calls) == 2
        assert series.values == [18.0]

    def test_transport_errors_are_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        provider = OpenMeteoArchiveProvider(client=mock_client(handler), max_retries=2, backoff_base=0)
        series = asyncio.run(provider.fetch_series("precipitation", 0.0, 0.0, START, END))
        assert len(calls) == 2
        assert series.quality == DataQuality.UPSTREAM_FAILURE

    def test_bundle_keeps_successful_series(self):
        def handler(request: httpx.Request) -> httpx.Response:
            variable = request.url.params["daily"]
            if variable == "temperature_2m_mean":
                return httpx.Response(500)
            return httpx.Response(200, json={"daily": {"time": ["2024-01-01"], variable: [3.0]}})

        provider = OpenMeteoArchiveProvider(client=mock_client(handler), max_retries=1, backoff_base=0)
        bundle = asyncio.run(provider.fetch_bundle(
            1.0, 2.0, START, END, parameters=[Parameter.PRECIPITATION, Parameter.TEMPERATURE],
        ))
        assert bundle.get("precipitation").values == [3.0]
        assert bundle.get("temperature").quality == DataQuality.UPSTREAM_FAILURE
        assert bundle.quality == DataQuality.PARTIAL
        assert bundle.start_date == "2024-01-01"
        assert bundle.get("humidity").quality == DataQuality.NO_DATA


class TestNasaPowerProvider:
    def test_compact_dates_and_fill_values(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["start"] == "20240101"
            return httpx.Response(200, json={"properties": {"parameter": {
                "PRECTOTCORR": {"20240101": 1.5, "20240102": -999.0, "20240103": 0.0},
            }}})

        provider = NasaPowerProvider(client=mock_client(handler), backoff_base=0)
        series = asyncio.run(provider.fetch_series("precipitation", 0.0, 0.0, START, END))
        assert series.dates == ["2024-01-01", "2024-01-03"]
        assert series.quality == DataQuality.PARTIAL
        assert series.source == "nasa_power"

    def test_unsupported_parameter(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        provider = NasaPowerProvider(client=mock_client(handler))
        series = asyncio.run(provider.fetch_series("evapotranspiration", 0.0, 0.0, START, END))
        assert series.quality == DataQuality.NO_DATA

    def test_malformed_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"messages": ["oops"]})

        provider = NasaPowerProvider(client=mock_client(handler), backoff_base=0)
        series = asyncio.run(provider.fetch_series("precipitation", 0.0, 0.0, START, END))
        assert series.quality == DataQuality.UPSTREAM_FAILURE


class TestBuildProvider:
    def test_selection(self):
        assert isinstance(build_provider(Settings(DATA_PROVIDER="nasa_power")), NasaPowerProvider)
        assert isinstance(build_provider(Settings(DATA_PROVIDER="open_meteo")), OpenMeteoArchiveProvider)


# ═══════════════════════════════════════════════════════════════════════════
# Terrain
# ═══════════════════════════════════════════════════════════════════════════

class TestTerrain:
    def test_flat_ground(self):
        terrain = terrain_from_samples(100.0, 100.0, 100.0, 100.0, 100.0, latitude=0.0)
        assert terrain.elevation == 100.0
        assert terrain.slope == pytest.approx(0.0)

    def test_rising_north_faces_south(self):
        terrain = terrain_from_samples(1000.0, 1110.54, 889.46, 1000.0, 1000.0, latitude=0.0)
        assert terrain.slope == pytest.approx(45.0, abs=0.01)
        assert terrain.aspect == pytest.approx(180.0)

    def test_rising_east_faces_west(self):
        terrain = terrain_from_samples(1000.0, 1000.0, 1000.0, 1050.0, 950.0, latitude=0.0)
        assert terrain.aspect == pytest.approx(270.0)

    def test_elevation_client(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert len(request.url.params["latitude"].split(",")) == 5
            return httpx.Response(200, json={"elevation": [1000.0, 1110.54, 889.46, 1000.0, 1000.0]})

        client = ElevationClient(client=mock_client(handler), backoff_base=0)
        terrain = asyncio.run(client.fetch_terrain(0.0, 10.0))
        assert terrain.quality == DataQuality.OK
        assert terrain.slope == pytest.approx(45.0, abs=0.01)

    def test_elevation_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        client = ElevationClient(client=mock_client(handler), max_retries=1, backoff_base=0)
        terrain = asyncio.run(client.fetch_terrain(0.0, 10.0))
        assert terrain.quality == DataQuality.UPSTREAM_FAILURE
        assert terrain.elevation is None

    def test_missing_neighbours(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"elevation": [1000.0, None, 990.0, 1000.0, 1000.0]})

        client = ElevationClient(client=mock_client(handler), backoff_base=0)
        terrain = asyncio.run(client.fetch_terrain(0.0, 10.0))
        assert terrain.quality == DataQuality.PARTIAL
        assert terrain.elevation == 1000.0
        assert terrain.slope is None

    def test_non_object_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[1000.0, 1000.0])

        client = ElevationClient(client=mock_client(handler), backoff_base=0)
        terrain = asyncio.run(client.fetch_terrain(0.0, 10.0))
        assert terrain.quality == DataQuality.UPSTREAM_FAILURE
        assert terrain.elevation is None


# ═══════════════════════════════════════════════════════════════════════════
# Landslide catalogue
# ═══════════════════════════════════════════════════════════════════════════

class TestLandslideCatalog:
    def test_parse_record(self):
        event = parse_catalog_record({
            "event_id": 42, "event_date": "2019-08-10T00:00:00.000",
            "latitude": "27.7", "longitude": "85.3",
            "landslide_trigger": "downpour", "landslide_size": "medium",
            "fatality_count": "3", "injury_count": "-1",
        })
        assert event.event_id == "42"
        assert event.date == "2019-08-10"
        assert event.latitude == 27.7
        assert event.trigger == "downpour"
        assert event.fatalities == 3
        assert event.injuries == 0
        assert event.category == "unknown"

    def test_record_without_location_is_dropped(self):
        assert parse_catalog_record({"event_date": "2019-08-10", "latitude": None}) is None

    def test_fetch_events(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=[
                {"event_date": "2020-07-01", "latitude": "27.71", "longitude": "85.31"},
                {"event_date": "bad", "latitude": "27.71", "longitude": "85.31"},
            ])

        client = LandslideCatalogClient(client=mock_client(handler), backoff_base=0)
        result = asyncio.run(client.fetch_events(27.7, 85.3, 25.0, since=date(2010, 1, 1)))
        assert result.quality == DataQuality.OK
        assert len(result.events) == 1
        assert result.events[0].event_id == "2020-07-01:27.7100:85.3100"
        assert "event_date >= '2010-01-01'" in seen["$where"]

    def test_fetch_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        client = LandslideCatalogClient(client=mock_client(handler), max_retries=1, backoff_base=0)
        result = asyncio.run(client.fetch_events(27.7, 85.3, 25.0))
        assert result.quality == DataQuality.UPSTREAM_FAILURE
        assert result.events == []

    def test_error_object_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": True, "message": "query timed out"})

        client = LandslideCatalogClient(client=mock_client(handler), backoff_base=0)
        result = asyncio.run(client.fetch_events(27.7, 85.3, 25.0))
        assert result.quality == DataQuality.UPSTREAM_FAILURE
        assert result.events == []

    def test_non_object_rows_are_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[
                "stray", None,
                {"event_date": "2020-07-01", "latitude": "27.71", "longitude": "85.31"},
            ])

        client = LandslideCatalogClient(client=mock_client(handler), backoff_base=0)
        result = asyncio.run(client.fetch_events(27.7, 85.3, 25.0))
        assert result.quality == DataQuality.OK
        assert [e.date for e in result.events] == ["2020-07-01"]
