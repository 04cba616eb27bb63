"""
radius_utils.py — Great-circle distance and radius queries.

Used for landslide-catalog lookups: which past events fall within the
search radius of a point, and how dense they are per 100 km².

All distances are in **kilometers**. Coordinates are in **decimal degrees**.

Haversine Formula
=================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Accurate to ~0.5 %, which is well below the positional uncertainty of
catalogued landslide locations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple, TypeVar


EARTH_RADIUS_KM: float = 6_371.0088  # IAU mean radius


class Located(Protocol):
    latitude: float
    longitude: float


L = TypeVar("L", bound=Located)


@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(f"Latitude must be in [-90, 90], got {self.latitude}")
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(f"Longitude must be in [-180, 180], got {self.longitude}")

    @property
    def lat_rad(self) -> float:
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        return math.radians(self.longitude)


def haversine(point1: Coordinate, point2: Coordinate) -> float:
    """
    Great-circle distance in km, rounded to 4 decimal places.

    >>> haversine(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return round(EARTH_RADIUS_KM * c, 4)


def bounding_box(center: Coordinate, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Lat/lon box that fully contains the circle (center, radius_km).

    Returns (min_lat, max_lat, min_lon, max_lon) in degrees, clamped to the
    valid coordinate ranges.
    """
    angular = radius_km / EARTH_RADIUS_KM

    min_lat = center.latitude - math.degrees(angular)
    max_lat = center.latitude + math.degrees(angular)

    # Longitude delta widens toward the poles
    cos_lat = math.cos(center.lat_rad)
    delta_lon = math.degrees(angular / cos_lat) if cos_lat > 1e-10 else 180.0

    return (
        max(min_lat, -90.0),
        min(max_lat, 90.0),
        max(center.longitude - delta_lon, -180.0),
        min(center.longitude + delta_lon, 180.0),
    )


def within_radius(center: Coordinate, items: Sequence[L], radius_km: float) -> List[L]:
    """
    Items whose (latitude, longitude) lie within ``radius_km`` of ``center``,
    nearest first. A bounding-box check rejects far items before Haversine.
    """
    if radius_km <= 0:
        raise ValueError(f"Radius must be positive, got {radius_km}")

    min_lat, max_lat, min_lon, max_lon = bounding_box(center, radius_km)
    matched: List[Tuple[float, L]] = []
    for item in items:
        if not (min_lat <= item.latitude <= max_lat and min_lon <= item.longitude <= max_lon):
            continue
        dist = haversine(center, Coordinate(item.latitude, item.longitude))
        if dist <= radius_km:
            matched.append((dist, item))

    matched.sort(key=lambda pair: pair[0])
    return [item for _, item in matched]


def density_per_100km2(count: int, radius_km: float) -> float:
    """Events per 100 km² of a circular search area."""
    if radius_km <= 0:
        raise ValueError(f"Radius must be positive, got {radius_km}")
    area_km2 = math.pi * radius_km ** 2
    return count / area_km2 * 100.0
