"""
Tests for extreme-weather event detection and current-condition alerts.

Covers:
    • Heat / cold waves: minimum duration, intensity, severity bands
    • Run closing on calendar gaps and flushing at the end of a series
    • Droughts with soil moisture, floods with return periods, storms
    • Combined detection over merged observations and its summary
    • Alert rule table
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from climate_risk.app.events.alerts import CurrentConditions, generate_weather_alerts
from climate_risk.app.events.detector import (
    EventThresholds,
    EventType,
    Severity,
    detect_cold_waves,
    detect_droughts,
    detect_extreme_events,
    detect_floods,
    detect_heat_waves,
    detect_storms,
    return_period_years,
    severity_from_intensity,
    storm_category,
    summarize_events,
)
from climate_risk.app.ingestion.models import DailyObservation, SeriesPoint


def daily(start: str, values):
    first = date.fromisoformat(start)
    return [SeriesPoint((first + timedelta(days=i)).isoformat(), v) for i, v in enumerate(values)]


# ═══════════════════════════════════════════════════════════════════════════
# Bands
# ═══════════════════════════════════════════════════════════════════════════

class TestBands:
    def test_severity_thresholds(self):
        assert severity_from_intensity(0.8) == Severity.EXTREME
        assert severity_from_intensity(0.6) == Severity.HIGH
        assert severity_from_intensity(0.4) == Severity.MODERATE
        assert severity_from_intensity(0.39) == Severity.LOW

    def test_return_periods(self):
        assert return_period_years(200) == 100
        assert return_period_years(150) == 50
        assert return_period_years(130) == 25
        assert return_period_years(75) == 10
        assert return_period_years(50) == 5
        assert return_period_years(49.9) == 2

    def test_storm_categories(self):
        assert storm_category(33.0) == "hurricane force"
        assert storm_category(25.0) == "storm"
        assert storm_category(21.0) == "strong gale"
        assert storm_category(17.2) == "gale"


# ═══════════════════════════════════════════════════════════════════════════
# Heat and cold waves
# ═══════════════════════════════════════════════════════════════════════════

class TestHeatWaves:
    def test_three_day_run(self):
        events = detect_heat_waves(daily("2024-07-01", [30, 36, 37, 38, 30]))
        assert len(events) == 1
        event = events[0]
        assert event.id == "heat_wave_2024-07-02"
        assert event.start_date == "2024-07-02"
        assert event.end_date == "2024-07-04"
        assert event.duration == 3
        assert event.average_temperature == pytest.approx(37.0)
        assert event.max_temperature == 38
        assert event.intensity == pytest.approx(0.2)
        assert event.severity == Severity.LOW
        assert event.ongoing is False

    def test_broken_run_then_full_run(self):
        # days 0-1 are too short; days 3-5 qualify
        points = daily("2024-07-01", [36, 37, 34, 38, 39, 40, 33])
        events = detect_heat_waves(points, threshold=35.0, min_duration=3)
        assert len(events) == 1
        assert events[0].start_date == points[3].date
        assert events[0].end_date == points[5].date
        assert events[0].duration == 3
        assert events[0].average_temperature == pytest.approx(39.0)
        assert events[0].severity == Severity.MODERATE
        assert events[0].ongoing is False

    def test_short_run_is_discarded(self):
        assert detect_heat_waves(daily("2024-07-01", [36, 37, 30])) == []

    def test_run_at_end_is_flushed_as_ongoing(self):
        events = detect_heat_waves(daily("2024-07-01", [30, 36, 37, 38]))
        assert len(events) == 1
        assert events[0].ongoing is True

    def test_run_at_end_dropped_without_flush(self):
        events = detect_heat_waves(daily("2024-07-01", [30, 36, 37, 38]), flush_at_end=False)
        assert events == []

    def test_calendar_gap_breaks_run(self):
        points = [
            SeriesPoint("2024-07-01", 36.0),
            SeriesPoint("2024-07-02", 36.0),
            SeriesPoint("2024-07-04", 36.0),
            SeriesPoint("2024-07-05", 36.0),
            SeriesPoint("2024-07-06", 36.0),
        ]
        events = detect_heat_waves(points)
        assert [e.start_date for e in events] == ["2024-07-04"]
        assert events[0].duration == 3

    def test_to_dict_serialises_enums(self):
        d = detect_heat_waves(daily("2024-07-01", [36, 37, 38]))[0].to_dict()
        assert d["type"] == "heat_wave"
        assert d["severity"] == "low"
        assert d["consecutive_days"] == 3


class TestColdWaves:
    def test_moderate_cold_wave(self):
        events = detect_cold_waves(daily("2024-01-10", [2, 1, 0]))
        assert len(events) == 1
        assert events[0].intensity == pytest.approx(0.4)
        assert events[0].severity == Severity.MODERATE
        assert events[0].min_temperature == 0
        assert events[0].ongoing is True


# ═══════════════════════════════════════════════════════════════════════════
# Droughts, floods, storms
# ═══════════════════════════════════════════════════════════════════════════

class TestDroughts:
    def test_deficit_above_minimum(self):
        events = detect_droughts(daily("2024-05-01", [0.0] * 40 + [5.0]))
        assert len(events) == 1
        event = events[0]
        assert event.duration == 40
        assert event.precipitation_deficit == pytest.approx(12.0)
        assert event.intensity == pytest.approx(0.24)
        assert event.ongoing is False
        assert event.soil_moisture_deficit is None

    def test_deficit_below_minimum(self):
        assert detect_droughts(daily("2024-05-01", [0.0] * 30 + [5.0])) == []

    def test_soil_moisture_deficit(self):
        rain = daily("2024-05-01", [0.0] * 40)
        soil = daily("2024-05-01", [0.4] * 39 + [0.2])
        event = detect_droughts(rain, soil)[0]
        assert event.soil_moisture_deficit == pytest.approx(0.8)
        assert event.ongoing is True


class TestFloods:
    def test_flood_run(self):
        events = detect_floods(daily("2024-09-01", [10, 60, 70, 10]))
        assert len(events) == 1
        event = events[0]
        assert event.precipitation_total == pytest.approx(130.0)
        assert event.peak_intensity == 70
        assert event.return_period == 25
        assert event.intensity == pytest.approx(0.65)
        assert event.severity == Severity.HIGH

    def test_total_must_exceed_minimum(self):
        assert detect_floods(daily("2024-09-01", [60, 10])) == []


class TestStorms:
    def test_storm_with_rain(self):
        wind = daily("2024-10-01", [10, 18, 25, 10])
        rain = daily("2024-10-01", [5, 5, 10, 0])
        events = detect_storms(wind, rain)
        assert len(events) == 1
        event = events[0]
        assert event.duration == 2
        assert event.category == "storm"
        assert event.severity == Severity.HIGH
        assert event.precipitation_total == pytest.approx(15.0)
        assert event.average_wind_speed == pytest.approx(21.5)

    def test_storm_without_rain_series(self):
        event = detect_storms(daily("2024-10-01", [18]))[0]
        assert event.precipitation_total is None
        assert event.category == "gale"


# ═══════════════════════════════════════════════════════════════════════════
# Combined detection
# ═══════════════════════════════════════════════════════════════════════════

class TestDetectExtremeEvents:
    def test_heat_falls_back_to_mean_temperature(self):
        obs = [DailyObservation(date=f"2024-07-0{i}", temperature=36.0) for i in range(1, 4)]
        events = detect_extreme_events(obs)
        assert [e.type for e in events] == [EventType.HEAT_WAVE]

    def test_ordered_by_start_then_type(self):
        obs = [
            DailyObservation(date="2024-07-01", temperature_max=36.0, precipitation=60.0),
            DailyObservation(date="2024-07-02", temperature_max=37.0, precipitation=60.0),
            DailyObservation(date="2024-07-03", temperature_max=38.0, precipitation=1.0),
        ]
        events = detect_extreme_events(obs)
        assert [e.type for e in events] == [EventType.FLOOD, EventType.HEAT_WAVE]

    def test_thresholds_are_respected(self):
        obs = [DailyObservation(date=f"2024-07-0{i}", temperature_max=31.0) for i in range(1, 4)]
        assert detect_extreme_events(obs) == []
        events = detect_extreme_events(obs, EventThresholds(heat_temperature=30.0))
        assert len(events) == 1

    def test_no_flush_drops_open_runs(self):
        obs = [DailyObservation(date=f"2024-07-0{i}", temperature_max=36.0) for i in range(1, 4)]
        assert detect_extreme_events(obs, EventThresholds(flush_at_end=False)) == []

    def test_repeated_detection_is_identical(self):
        obs = [
            DailyObservation(
                date=(date(2024, 7, 1) + timedelta(days=i)).isoformat(),
                temperature_max=36.0 + i % 3,
                temperature_min=20.0,
                precipitation=60.0 if i in (4, 5) else 0.5,
                wind_speed=18.0 if i in (8, 9) else 3.0,
            )
            for i in range(12)
        ]
        first = [e.to_dict() for e in detect_extreme_events(obs)]
        second = [e.to_dict() for e in detect_extreme_events(obs)]
        assert first
        assert first == second


class TestSummarizeEvents:
    def test_counts_and_averages(self):
        events = (
            detect_heat_waves(daily("2024-07-01", [36, 37, 38]))
            + detect_floods(daily("2024-09-01", [60, 70, 10]))
        )
        summary = summarize_events(events)
        assert summary.total_events == 2
        assert summary.events_by_type == {"heat_wave": 1, "flood": 1}
        assert summary.events_by_severity == {"low": 1, "high": 1}
        assert summary.average_duration == pytest.approx(2.5)
        assert summary.average_intensity == pytest.approx((0.2 + 0.65) / 2)
        assert summary.ongoing_events == 1

    def test_empty(self):
        summary = summarize_events([])
        assert summary.total_events == 0
        assert summary.to_dict()["average_duration"] == 0.0


# ═══════════════════════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════════════════════

class TestAlerts:
    ISSUED = datetime(2024, 7, 1, 12, 30, tzinfo=timezone.utc)

    def test_all_rules_fire(self):
        conditions = CurrentConditions(10.0, 76.0, temperature=36.0, soil_moisture=0.2,
                                       precipitation=60.0)
        alerts = generate_weather_alerts(conditions, issued_at=self.ISSUED)
        assert [a.event for a in alerts] == ["Heat Wave", "Drought Conditions", "Flood Risk"]
        heat, drought, flood = alerts
        assert heat.id == "heat_alert_202407011230"
        assert heat.expires_at - heat.issued_at == timedelta(hours=24)
        assert drought.type == "advisory"
        assert drought.severity == Severity.MODERATE
        assert drought.expires_at - drought.issued_at == timedelta(days=7)
        assert flood.expires_at - flood.issued_at == timedelta(hours=12)

    def test_thresholds_are_strict(self):
        conditions = CurrentConditions(0.0, 0.0, temperature=35.0, soil_moisture=0.3,
                                       precipitation=50.0)
        assert generate_weather_alerts(conditions, issued_at=self.ISSUED) == []

    def test_missing_readings_never_alert(self):
        assert generate_weather_alerts(CurrentConditions(0.0, 0.0), issued_at=self.ISSUED) == []

    def test_to_dict(self):
        alert = generate_weather_alerts(
            CurrentConditions(1.5, 2.5, temperature=40.0), issued_at=self.ISSUED,
        )[0]
        d = alert.to_dict()
        assert d["coordinates"] == {"lat": 1.5, "lon": 2.5}
        assert d["severity"] == "high"
        assert d["issued_at"] == self.ISSUED.isoformat()
