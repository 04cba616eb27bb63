"""
Tests for the standardized climate indices.

Covers:
    • SPI / SPEI z-scores, categories and degenerate windows
    • Simplified PDSI clamp and bands
    • Heat index (Rothfusz) and wind chill (NWS 2001)
    • Monthly totals and rolling index series
    • Drought analysis over SPI entries
"""

from __future__ import annotations

import math
from datetime import date, timedelta

import pytest

from climate_risk.app.indices.climate_indices import (
    IndexCategory,
    IndexSeriesEntry,
    IndexStatus,
    analyze_drought,
    celsius_to_fahrenheit,
    fahrenheit_to_celsius,
    heat_index,
    heat_index_series,
    monthly_totals,
    pdsi,
    pdsi_series,
    spei,
    spei_series,
    spi,
    spi_series,
    wind_chill,
    wind_chill_series,
)
from climate_risk.app.ingestion.models import SeriesPoint


def daily(start: str, values):
    first = date.fromisoformat(start)
    return [SeriesPoint((first + timedelta(days=i)).isoformat(), v) for i, v in enumerate(values)]


# ═══════════════════════════════════════════════════════════════════════════
# SPI / SPEI
# ═══════════════════════════════════════════════════════════════════════════

class TestSPI:
    def test_z_score_of_latest_sample(self):
        """mean 3, population σ √2 → (5 − 3) / √2 ≈ 1.414"""
        result = spi([1, 2, 3, 4, 5], timescale=5)
        assert result.status == IndexStatus.OK
        assert result.value == pytest.approx(math.sqrt(2))
        assert result.category == IndexCategory.MODERATELY_WET

    def test_window_is_trailing(self):
        # Only the last three samples enter the window
        result = spi([100, 1, 2, 3], timescale=3)
        assert result.value == pytest.approx((3 - 2) / math.sqrt(2 / 3))

    def test_missing_values_are_skipped(self):
        result = spi([1, None, 2, float("nan"), 3, float("inf"), 4, 5], timescale=5)
        assert result.value == pytest.approx(math.sqrt(2))

    def test_insufficient_data(self):
        result = spi([1.0, 2.0], timescale=3)
        assert result.status == IndexStatus.INSUFFICIENT_DATA
        assert result.category == IndexCategory.INSUFFICIENT_DATA
        assert result.value == 0.0

    def test_no_variability(self):
        result = spi([2.0, 2.0, 2.0], timescale=3)
        assert result.status == IndexStatus.NO_VARIABILITY
        assert result.category == IndexCategory.NO_VARIABILITY
        assert math.isfinite(result.value)

    def test_extremely_dry(self):
        result = spi([10, 10, 10, 10, 10, 10, 10, 10, 10, 0], timescale=10)
        assert result.value == pytest.approx(-3.0)
        assert result.category == IndexCategory.EXTREMELY_DRY

    def test_zero_timescale_is_insufficient(self):
        assert spi([1, 2, 3], timescale=0).status == IndexStatus.INSUFFICIENT_DATA


class TestSPEI:
    def test_uses_water_balance(self):
        """D = [5, 15, 25]: mean 15, σ ≈ 8.165 → z ≈ 1.225"""
        result = spei([10, 20, 30], [5, 5, 5], timescale=3)
        assert result.value == pytest.approx(10 / math.sqrt(200 / 3))
        assert result.category == IndexCategory.MODERATELY_WET
        assert result.description.endswith("considering evapotranspiration")

    def test_length_mismatch_is_insufficient(self):
        assert spei([1, 2, 3], [1, 2], timescale=2).status == IndexStatus.INSUFFICIENT_DATA

    def test_without_pet_is_insufficient(self):
        assert spei([], [], timescale=3).status == IndexStatus.INSUFFICIENT_DATA


# ═══════════════════════════════════════════════════════════════════════════
# PDSI
# ═══════════════════════════════════════════════════════════════════════════

class TestPDSI:
    def test_balanced_is_near_normal(self):
        result = pdsi([5, 5, 5], [5, 5, 5])
        assert result.value == pytest.approx(0.0)
        assert result.category == IndexCategory.NEAR_NORMAL

    def test_clamped_to_minus_four(self):
        result = pdsi([0] * 5, [50] * 5)
        assert result.value == -4.0
        assert result.category == IndexCategory.EXTREME_DROUGHT

    def test_clamped_to_plus_four(self):
        result = pdsi([80] * 5, [0] * 5)
        assert result.value == 4.0
        assert result.category == IndexCategory.EXTREMELY_WET

    def test_moderate_drought_band(self):
        assert pdsi([0, 0], [25, 25]).category == IndexCategory.MODERATE_DROUGHT

    def test_severe_drought_band(self):
        assert pdsi([0, 0], [35, 35]).category == IndexCategory.SEVERE_DROUGHT

    def test_description_flags_approximation(self):
        assert "approximation" in pdsi([1], [1]).description

    def test_temperature_does_not_change_result(self):
        assert pdsi([1, 2], [3, 3], [30, 31]).value == pdsi([1, 2], [3, 3]).value

    def test_empty_is_insufficient(self):
        assert pdsi([], []).status == IndexStatus.INSUFFICIENT_DATA


# ═══════════════════════════════════════════════════════════════════════════
# Heat index / wind chill
# ═══════════════════════════════════════════════════════════════════════════

class TestHeatIndex:
    def test_rothfusz_value(self):
        result = heat_index(90.0, 50.0)
        assert result.value == pytest.approx(94.597, abs=0.01)
        assert result.category == IndexCategory.EXTREME_CAUTION

    def test_feels_like_equals_value(self):
        result = heat_index(95.0, 60.0)
        assert result.feels_like == result.value

    def test_missing_input(self):
        assert heat_index(float("nan"), 50.0).status == IndexStatus.INSUFFICIENT_DATA


class TestWindChill:
    def test_nws_formula(self):
        result = wind_chill(0.0, 20.0)
        assert result.value == pytest.approx(-22.0, abs=0.05)
        assert result.category == IndexCategory.HIGH_RISK

    def test_light_wind_returns_temperature(self):
        result = wind_chill(30.0, 2.0)
        assert result.category == IndexCategory.NO_WIND_CHILL
        assert result.value == 30.0
        assert result.feels_like == 30.0

    def test_mild_conditions_no_risk(self):
        assert wind_chill(40.0, 5.0).category == IndexCategory.NO_RISK


class TestConversions:
    def test_round_trip_freezing(self):
        assert celsius_to_fahrenheit(0.0) == 32.0
        assert fahrenheit_to_celsius(212.0) == pytest.approx(100.0)


# ═══════════════════════════════════════════════════════════════════════════
# Series
# ═══════════════════════════════════════════════════════════════════════════

class TestMonthlyTotals:
    def test_sums_per_month(self):
        points = daily("2024-01-01", [1.0] * 31 + [2.0] * 29)
        totals = monthly_totals(points)
        assert [p.date for p in totals] == ["2024-01", "2024-02"]
        assert totals[0].value == pytest.approx(31.0)
        assert totals[1].value == pytest.approx(58.0)

    def test_incomplete_edge_months_dropped(self):
        # Jan 15..Jan 31, all of Feb, Mar 1..10
        points = daily("2024-01-15", [1.0] * (17 + 29 + 10))
        assert [p.date for p in monthly_totals(points)] == ["2024-01", "2024-02", "2024-03"]
        totals = monthly_totals(points, complete_only=True)
        assert [p.date for p in totals] == ["2024-02"]
        assert totals[0].value == pytest.approx(29.0)

    def test_complete_months_kept(self):
        points = daily("2023-12-01", [1.0] * (31 + 31 + 29))
        totals = monthly_totals(points, complete_only=True)
        assert [p.date for p in totals] == ["2023-12", "2024-01", "2024-02"]

    def test_single_partial_month(self):
        assert monthly_totals(daily("2024-04-03", [1.0] * 10), complete_only=True) == []


class TestIndexSeries:
    def test_daily_spi_series_starts_when_window_full(self):
        entries = spi_series(daily("2024-03-01", [1, 2, 3, 4]), timescale=3)
        assert [e.date for e in entries] == ["2024-03-03", "2024-03-04"]
        assert all(e.timescale == 3 for e in entries)

    def test_monthly_spi_series(self):
        values = [1.0] * 31 + [2.0] * 29 + [3.0] * 31
        entries = spi_series(daily("2024-01-01", values), timescale=3, period="monthly")
        assert len(entries) == 1
        assert entries[0].date == "2024-03"

    def test_monthly_spi_series_ignores_partial_last_month(self):
        values = [1.0] * 31 + [2.0] * 29 + [3.0] * 31 + [0.0] * 5
        entries = spi_series(daily("2024-01-01", values), timescale=3, period="monthly")
        assert [e.date for e in entries] == ["2024-03"]
        assert entries[0].value > 1.0

    def test_monthly_spei_series(self):
        precip = daily("2024-01-01", [1.0] * 31 + [2.0] * 29 + [3.0] * 31)
        pet = daily("2024-01-01", [1.0] * 91)
        entries = spei_series(precip, pet, timescale=3, period="monthly")
        # balances 0, 29, 62
        assert [e.date for e in entries] == ["2024-03"]
        assert entries[0].value == pytest.approx(1.25, abs=0.01)
        assert entries[0].category == IndexCategory.MODERATELY_WET
        assert "evapotranspiration" in entries[0].description

    def test_pdsi_series_rolls_daily_window(self):
        precip = daily("2024-05-01", [2.0] * 13)
        pet = daily("2024-05-01", [1.0] * 13)
        entries = pdsi_series(precip, pet)
        assert [e.date for e in entries] == ["2024-05-12", "2024-05-13"]
        assert all(e.value == pytest.approx(0.1) for e in entries)
        assert all(e.timescale == 12 for e in entries)

    def test_pdsi_series_only_on_shared_dates(self):
        precip = daily("2024-05-01", [2.0] * 12)
        pet = daily("2024-05-02", [1.0] * 12)
        assert pdsi_series(precip, pet) == []

    def test_heat_index_series_skips_mild_days(self):
        temps = daily("2024-07-01", [20.0, 35.0])
        humidity = daily("2024-07-01", [70.0, 70.0])
        entries = heat_index_series(temps, humidity)
        assert [e.date for e in entries] == ["2024-07-02"]
        assert entries[0].feels_like > 35.0

    def test_wind_chill_series_skips_warm_days(self):
        temps = daily("2024-01-01", [-10.0, 20.0])
        wind = daily("2024-01-01", [8.0, 8.0])
        entries = wind_chill_series(temps, wind)
        assert [e.date for e in entries] == ["2024-01-01"]
        assert entries[0].feels_like < -10.0


class TestAnalyzeDrought:
    def _entries(self, values):
        return [
            IndexSeriesEntry(f"2024-{i + 1:02d}", v, IndexCategory.NEAR_NORMAL, "", 3)
            for i, v in enumerate(values)
        ]

    def test_worsening_severe_drought(self):
        analysis = analyze_drought(self._entries([-0.2, -0.6, -1.2, -1.6]))
        assert analysis.current_value == pytest.approx(-1.6)
        assert analysis.severity == "severe"
        assert analysis.trend == "worsening"
        assert analysis.duration == 3

    def test_improving(self):
        analysis = analyze_drought(self._entries([-2.0, -1.5, 0.5, 1.0]))
        assert analysis.trend == "improving"
        assert analysis.severity == "none"
        assert analysis.duration == 0

    def test_empty(self):
        analysis = analyze_drought([])
        assert analysis.current_value is None
        assert analysis.samples == 0
