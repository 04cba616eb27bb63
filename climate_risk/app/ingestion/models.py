"""
Typed observation records shared by every calculator.

A provider's raw payload is turned into these value objects once, at the
ingestion boundary. Downstream code never sees sentinel numbers, string
dates in mixed formats or ``None`` placeholders standing in for "the whole
parameter is missing": that last case is an empty ``ClimateSeries`` whose
``quality`` says why it is empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class DataQuality(str, Enum):
    OK = "ok"
    PARTIAL = "partial"                    # some samples dropped or factors missing
    NO_DATA = "no_data"                    # provider answered, nothing usable
    UPSTREAM_FAILURE = "upstream_failure"  # fetch failed or timed out


class Parameter(str, Enum):
    PRECIPITATION = "precipitation"
    TEMPERATURE = "temperature"
    TEMPERATURE_MAX = "temperature_max"
    TEMPERATURE_MIN = "temperature_min"
    HUMIDITY = "humidity"
    WIND_SPEED = "wind_speed"
    SOIL_MOISTURE = "soil_moisture"
    EVAPOTRANSPIRATION = "evapotranspiration"


def combine_quality(qualities: List[DataQuality]) -> DataQuality:
    """Worst-case roll-up used for bundles and reports."""
    if not qualities:
        return DataQuality.NO_DATA
    if all(q == DataQuality.OK for q in qualities):
        return DataQuality.OK
    if all(q == DataQuality.UPSTREAM_FAILURE for q in qualities):
        return DataQuality.UPSTREAM_FAILURE
    if all(q in (DataQuality.NO_DATA, DataQuality.UPSTREAM_FAILURE) for q in qualities):
        return DataQuality.NO_DATA
    return DataQuality.PARTIAL


@dataclass(frozen=True)
class SeriesPoint:
    date: str  # YYYY-MM-DD
    value: float


@dataclass
class ClimateSeries:
    """Date-ordered samples for one parameter at one location."""
    parameter: str
    points: List[SeriesPoint] = field(default_factory=list)
    quality: DataQuality = DataQuality.OK
    source: str = ""

    @classmethod
    def unavailable(
        cls,
        parameter: str,
        quality: DataQuality = DataQuality.UPSTREAM_FAILURE,
        source: str = "",
    ) -> "ClimateSeries":
        return cls(parameter=parameter, points=[], quality=quality, source=source)

    @property
    def is_available(self) -> bool:
        return bool(self.points)

    @property
    def dates(self) -> List[str]:
        return [p.date for p in self.points]

    @property
    def values(self) -> List[float]:
        return [p.value for p in self.points]

    def as_mapping(self) -> Dict[str, float]:
        return {p.date: p.value for p in self.points}

    def __len__(self) -> int:
        return len(self.points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameter": self.parameter,
            "quality": self.quality.value,
            "source": self.source,
            "points": [[p.date, p.value] for p in self.points],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ClimateSeries":
        return cls(
            parameter=raw["parameter"],
            points=[SeriesPoint(d, float(v)) for d, v in raw.get("points", [])],
            quality=DataQuality(raw.get("quality", DataQuality.OK.value)),
            source=raw.get("source", ""),
        )


@dataclass
class DailyObservation:
    """One day of merged observations. Every reading is optional."""
    date: str
    temperature: Optional[float] = None
    temperature_max: Optional[float] = None
    temperature_min: Optional[float] = None
    precipitation: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    soil_moisture: Optional[float] = None
    evapotranspiration: Optional[float] = None

    @property
    def year(self) -> int:
        return int(self.date[:4])

    @property
    def month(self) -> int:
        return int(self.date[5:7])

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DailyObservation":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in names})


@dataclass
class ObservationBundle:
    """All series fetched for one (location, period) query."""
    latitude: float
    longitude: float
    start_date: str
    end_date: str
    series: Dict[str, ClimateSeries] = field(default_factory=dict)
    source: str = ""

    def get(self, parameter: Parameter | str) -> ClimateSeries:
        name = Parameter(parameter).value
        # An empty series is falsy; keep its upstream_failure tag
        series = self.series.get(name)
        return series if series is not None else ClimateSeries.unavailable(name, DataQuality.NO_DATA)

    @property
    def quality(self) -> DataQuality:
        return combine_quality([s.quality for s in self.series.values()])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "source": self.source,
            "quality": self.quality.value,
            "series": {name: s.to_dict() for name, s in self.series.items()},
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ObservationBundle":
        return cls(
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
            start_date=raw["start_date"],
            end_date=raw["end_date"],
            source=raw.get("source", ""),
            series={name: ClimateSeries.from_dict(s) for name, s in raw.get("series", {}).items()},
        )


@dataclass
class TerrainProfile:
    """Elevation (m), slope (degrees) and aspect (degrees clockwise from north)."""
    elevation: Optional[float] = None
    slope: Optional[float] = None
    aspect: Optional[float] = None
    quality: DataQuality = DataQuality.OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "elevation": self.elevation,
            "slope": self.slope,
            "aspect": self.aspect,
            "quality": self.quality.value,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TerrainProfile":
        return cls(
            elevation=raw.get("elevation"),
            slope=raw.get("slope"),
            aspect=raw.get("aspect"),
            quality=DataQuality(raw.get("quality", DataQuality.OK.value)),
        )


@dataclass
class LandslideCatalogEvent:
    """One record of the global landslide catalog."""
    event_id: str
    date: str
    latitude: float
    longitude: float
    title: str = ""
    category: str = "unknown"
    trigger: str = "unknown"
    size: str = "unknown"
    fatalities: int = 0
    injuries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "LandslideCatalogEvent":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in names})
