"""
Weather alerts from current conditions.

Rule table:
    temperature > 35 °C          → Heat Wave warning (high), 24 h
    soil moisture < 0.3 m³/m³    → Drought Conditions advisory (moderate), 7 d
    precipitation > 50 mm        → Flood Risk warning (high), 12 h

Missing readings never trigger (or suppress) an alert by default value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .detector import Severity

HEAT_ALERT_TEMPERATURE = 35.0
DROUGHT_ALERT_SOIL_MOISTURE = 0.3
FLOOD_ALERT_PRECIPITATION = 50.0


@dataclass
class CurrentConditions:
    latitude: float
    longitude: float
    temperature: Optional[float] = None
    soil_moisture: Optional[float] = None
    precipitation: Optional[float] = None


@dataclass
class WeatherAlert:
    id: str
    type: str  # warning | watch | advisory
    severity: Severity
    event: str
    description: str
    issued_at: datetime
    expires_at: datetime
    latitude: float
    longitude: float
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity.value,
            "event": self.event,
            "description": self.description,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "coordinates": {"lat": self.latitude, "lon": self.longitude},
            "recommendations": self.recommendations,
        }


def generate_weather_alerts(
    conditions: CurrentConditions,
    issued_at: Optional[datetime] = None,
) -> List[WeatherAlert]:
    now = issued_at or datetime.now(timezone.utc)
    stamp = now.strftime("%Y%m%d%H%M")
    alerts: List[WeatherAlert] = []

    if conditions.temperature is not None and conditions.temperature > HEAT_ALERT_TEMPERATURE:
        alerts.append(WeatherAlert(
            id=f"heat_alert_{stamp}",
            type="warning",
            severity=Severity.HIGH,
            event="Heat Wave",
            description=(
                f"Extreme heat conditions with temperature reaching "
                f"{conditions.temperature:.1f}°C"
            ),
            issued_at=now,
            expires_at=now + timedelta(hours=24),
            latitude=conditions.latitude,
            longitude=conditions.longitude,
            recommendations=[
                "Stay hydrated and avoid prolonged outdoor activities",
                "Check on elderly and vulnerable populations",
                "Use air conditioning or fans to stay cool",
            ],
        ))

    if conditions.soil_moisture is not None and conditions.soil_moisture < DROUGHT_ALERT_SOIL_MOISTURE:
        alerts.append(WeatherAlert(
            id=f"drought_alert_{stamp}",
            type="advisory",
            severity=Severity.MODERATE,
            event="Drought Conditions",
            description=(
                f"Low soil moisture levels detected "
                f"({conditions.soil_moisture * 100:.1f}%)"
            ),
            issued_at=now,
            expires_at=now + timedelta(days=7),
            latitude=conditions.latitude,
            longitude=conditions.longitude,
            recommendations=[
                "Implement water conservation measures",
                "Monitor crop conditions closely",
                "Consider irrigation if available",
            ],
        ))

    if conditions.precipitation is not None and conditions.precipitation > FLOOD_ALERT_PRECIPITATION:
        alerts.append(WeatherAlert(
            id=f"flood_alert_{stamp}",
            type="warning",
            severity=Severity.HIGH,
            event="Flood Risk",
            description=f"Heavy precipitation detected ({conditions.precipitation:.1f}mm)",
            issued_at=now,
            expires_at=now + timedelta(hours=12),
            latitude=conditions.latitude,
            longitude=conditions.longitude,
            recommendations=[
                "Avoid low-lying areas and river banks",
                "Do not walk or drive through flood water",
                "Prepare an emergency kit and follow local authority guidance",
            ],
        ))

    return alerts
